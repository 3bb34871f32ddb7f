"""
pygame drawing for the racer: camera, track, car, sensors, network panel and HUD.
"""

import math

import numpy as np
import pygame

from .config import HEIGHT, WIDTH

BACKGROUND = (40, 75, 50)
WALL_COLOR = (255, 255, 255)
CHECKPOINT_COLOR = (70, 70, 70)
NEXT_CHECKPOINT_COLOR = (0, 200, 255)
START_COLOR = (255, 60, 60)
TRAIL_COLOR = (90, 110, 95)
CRASH_COLOR = (200, 60, 60)
CAR_COLOR = (60, 220, 60)
STALLED_CAR_COLOR = (220, 160, 40)
WHEEL_COLOR = (20, 20, 20)
SENSOR_COLOR = (255, 220, 0)
PANEL_COLOR = (20, 20, 25)
TEXT_COLOR = (255, 255, 255)
HELP_COLOR = (130, 130, 130)

# weight -1 .. 0 .. +1
NEGATIVE_WEIGHT = np.array([127, 255, 212])
ZERO_WEIGHT = np.array([0x22, 0x22, 0x22])
POSITIVE_WEIGHT = np.array([255, 255, 255])

SLOW_COLOR = np.array([255, 60, 60])
FAST_COLOR = np.array([60, 220, 60])

OUTPUT_LABELS = ("throttle", "brake", "steer")


def weight_colors(weights):
    """Map an array of weights in [-1, 1] to RGB rows."""
    w = np.clip(np.asarray(weights, dtype=float), -1, 1)[..., None]
    negative = ZERO_WEIGHT + (NEGATIVE_WEIGHT - ZERO_WEIGHT) * -np.minimum(w, 0)
    positive = ZERO_WEIGHT + (POSITIVE_WEIGHT - ZERO_WEIGHT) * np.maximum(w, 0)
    return np.where(w < 0, negative, positive).astype(int)


def speed_colors(speeds, min_speed, max_speed):
    span = max(max_speed - min_speed, 1e-9)
    t = np.clip((np.asarray(speeds, dtype=float) - min_speed) / span, 0, 1)[..., None]
    return (SLOW_COLOR + (FAST_COLOR - SLOW_COLOR) * t).astype(int)


def _rgb(row):
    return tuple(int(c) for c in row)


def _rotate(local, position, angle):
    cos_a, sin_a = math.cos(angle), math.sin(angle)
    return (
        position[0] + local[0] * cos_a - local[1] * sin_a,
        position[1] + local[0] * sin_a + local[1] * cos_a,
    )


class Camera:
    def __init__(self, width=WIDTH, height=HEIGHT):
        self.width = width
        self.height = height
        self.x = 0.0
        self.y = 0.0
        self.zoom = 0.6
        self.min_zoom = 0.08
        self.max_zoom = 4.0
        self.target_x = 0.0
        self.target_y = 0.0
        self.target_zoom = 0.6
        self.following = True

    def follow(self, x, y):
        self.target_x = x
        self.target_y = y

    def jump_to(self, x, y):
        self.x = self.target_x = x
        self.y = self.target_y = y

    def update(self, dt):
        # Smooth interpolation
        t = min(1.0, dt * 8.0)
        self.x += (self.target_x - self.x) * t
        self.y += (self.target_y - self.y) * t
        self.zoom += (self.target_zoom - self.zoom) * t

    def zoom_in(self):
        self.target_zoom = min(self.max_zoom, self.target_zoom * 1.3)

    def zoom_out(self):
        self.target_zoom = max(self.min_zoom, self.target_zoom / 1.3)

    def world_to_screen(self, wx, wy):
        # physics y points up, screen y points down
        return (
            (wx - self.x) * self.zoom + self.width * 0.5,
            -(wy - self.y) * self.zoom + self.height * 0.5,
        )


class HudStatus:
    """Status sink that keeps the latest numbers and blits them as text."""

    def __init__(self):
        self.generation = 0
        self.genome = 0
        self.best_fitness = 0.0
        self.fitness = 0.0
        self.avg_speed = 0.0

    def update_genetic(self, generation, genome, best_fitness):
        self.generation = generation
        self.genome = genome
        self.best_fitness = best_fitness

    def update_individual(self, fitness, avg_speed):
        self.fitness = fitness
        self.avg_speed = avg_speed

    def lines(self):
        return [
            f"Gen: {self.generation}  |  Genome: {self.genome}",
            f"Fitness: {self.fitness:.0f}  (Best: {self.best_fitness:.0f})",
            f"Avg speed: {self.avg_speed:.1f}",
        ]

    def draw(self, surface, font, extra_lines=()):
        lines = self.lines() + list(extra_lines)
        width = 400
        hud_x = surface.get_width() - width
        pygame.draw.rect(surface, PANEL_COLOR, (hud_x - 10, 8, width, 12 + len(lines) * 18), border_radius=6)
        for i, line in enumerate(lines):
            surface.blit(font.render(line, True, TEXT_COLOR), (hud_x, 14 + i * 18))


class PygameRenderer:
    def __init__(self, surface, camera=None, font=None):
        self.surface = surface
        self.camera = camera or Camera(surface.get_width(), surface.get_height())
        self.font = font or pygame.font.SysFont("Consolas", 18)

    def draw(self, frame, trails):
        camera = self.camera
        if camera.following:
            camera.follow(*frame.car_position)

        self.surface.fill(BACKGROUND)
        self._draw_track(frame)
        self._draw_trails(trails)
        self._draw_live_trail(frame)
        self._draw_car(frame)
        self._draw_sensors(frame)
        self._draw_network(frame)
        self._draw_car_status(frame)

    def _line(self, color, a, b, width=1):
        pygame.draw.line(self.surface, color, self.camera.world_to_screen(*a),
                         self.camera.world_to_screen(*b), width)

    def _draw_track(self, frame):
        track = frame.track
        for wall in track.walls:
            self._line(WALL_COLOR, wall.start, wall.end, 2)
        for checkpoint in track.checkpoints:
            if checkpoint.index == frame.checkpoint_index:
                color, width = NEXT_CHECKPOINT_COLOR, 3
            elif checkpoint.last_checkpoint:
                color, width = START_COLOR, 3
            else:
                color, width = CHECKPOINT_COLOR, 1
            self._line(color, checkpoint.start, checkpoint.end, width)

    def _draw_trails(self, trails):
        camera = self.camera
        for trail in trails:
            if len(trail) > 1:
                pygame.draw.lines(self.surface, TRAIL_COLOR, False,
                                  [camera.world_to_screen(*p) for p in trail], 1)
            if trail:
                # every finished episode ends in a crash or a stall
                x, y = camera.world_to_screen(*trail[-1])
                size = 4
                pygame.draw.line(self.surface, CRASH_COLOR, (x - size, y - size), (x + size, y + size), 2)
                pygame.draw.line(self.surface, CRASH_COLOR, (x - size, y + size), (x + size, y - size), 2)

    def _draw_live_trail(self, frame):
        datapoints = frame.datapoints
        if len(datapoints) < 2:
            return
        colors = speed_colors([d.speed for d in datapoints], frame.min_speed, frame.max_speed)
        for previous, current, color in zip(datapoints, datapoints[1:], colors[1:]):
            self._line(_rgb(color), previous.position, current.position, 2)

    def _draw_car(self, frame):
        width, height = frame.car_size
        position, angle = frame.car_position, frame.car_angle
        corners = [(-width / 2, -height / 2), (width / 2, -height / 2),
                   (width / 2, height / 2), (-width / 2, height / 2)]
        color = STALLED_CAR_COLOR if frame.stalled else CAR_COLOR
        pygame.draw.polygon(self.surface, color, [
            self.camera.world_to_screen(*_rotate(c, position, angle)) for c in corners
        ])

        wheel_length = height / 4
        for wx, wy in corners:
            wheel_angle = angle + (frame.steer_value if wy > 0 else 0.0)
            center = _rotate((wx, wy), position, angle)
            a = _rotate((0, -wheel_length / 2), center, wheel_angle)
            b = _rotate((0, wheel_length / 2), center, wheel_angle)
            self._line(WHEEL_COLOR, a, b, max(2, int(4 * self.camera.zoom)))

    def _draw_sensors(self, frame):
        camera = self.camera
        for sensor in frame.sensors:
            end = sensor.hit_point if sensor.has_hit else sensor.end
            self._line(SENSOR_COLOR, sensor.start, end)
            if sensor.has_hit:
                x, y = camera.world_to_screen(*sensor.hit_point)
                pygame.draw.circle(self.surface, SENSOR_COLOR, (int(x), int(y)), 3)
                normal_end = (sensor.hit_point[0] + sensor.hit_normal[0] * 10,
                              sensor.hit_point[1] + sensor.hit_normal[1] * 10)
                self._line(CRASH_COLOR, sensor.hit_point, normal_end)

    def _draw_network(self, frame):
        """Layered node diagram in the bottom-left corner, edges coloured by weight."""
        w_in, w_hidden = (m.detach().cpu().numpy() for m in frame.network.weight_matrices())
        structure = frame.network.structure
        layers = [structure.num_inputs, structure.num_hidden_nodes, structure.num_outputs]
        values = [frame.inputs, frame.hidden, frame.outputs]

        panel_w, panel_h = 260, 200
        left, top = 12, self.surface.get_height() - panel_h - 36
        pygame.draw.rect(self.surface, PANEL_COLOR, (left, top, panel_w, panel_h), border_radius=6)

        positions = []
        for column, count in enumerate(layers):
            x = left + 30 + column * (panel_w - 90) / 2
            spacing = (panel_h - 20) / count
            positions.append([(x, top + 10 + spacing * (i + 0.5)) for i in range(count)])

        for weights, sources, targets in ((w_in, positions[0], positions[1]),
                                          (w_hidden, positions[1], positions[2])):
            colors = weight_colors(weights)
            for t, target in enumerate(targets):
                for s, source in enumerate(sources):
                    pygame.draw.line(self.surface, _rgb(colors[t, s]), source, target, 1)

        for column, layer in enumerate(positions):
            layer_values = values[column]
            for i, (x, y) in enumerate(layer):
                value = layer_values[i] if i < len(layer_values) else 0.0
                color = _rgb(weight_colors(math.tanh(value)))
                pygame.draw.circle(self.surface, color, (int(x), int(y)), 6)
                pygame.draw.circle(self.surface, TEXT_COLOR, (int(x), int(y)), 6, 1)
        for (x, y), label in zip(positions[2], OUTPUT_LABELS):
            self.surface.blit(self.font.render(label, True, HELP_COLOR), (x + 10, y - 9))

    def _draw_car_status(self, frame):
        lines = [
            f"Checkpoint: {frame.checkpoint_index}/{len(frame.track.checkpoints)}  |  Laps: {frame.laps}",
            f"Fitness: {frame.fitness:.1f}",
            f"Avg speed: {frame.avg_speed:.1f}{'  [STALLED]' if frame.stalled else ''}",
            f"Steer: {frame.steer_value:+.2f}",
        ]
        left, top = 12, 12
        pygame.draw.rect(self.surface, PANEL_COLOR, (left, top, 330, 12 + len(lines) * 18), border_radius=6)
        for i, line in enumerate(lines):
            self.surface.blit(self.font.render(line, True, TEXT_COLOR), (left + 10, top + 6 + i * 18))
