"""
Neural racing: a genetic algorithm evolving small networks that drive a car around a track.

Run with a window (SPACE start/pause, K kill the current car, R reset) or
with --headless to evolve a fixed number of generations as fast as possible.
"""

import argparse
import logging
import os
import random

import torch

from .config import (
    HEIGHT,
    TARGET_FPS,
    WIDTH,
    EpisodeOptions,
    GeneticOptions,
    SensorOptions,
)
from .network import setup_device
from .simulator import SchedulerState, Simulator
from .track import default_track, load_track_csv

logger = logging.getLogger(__name__)

HELP_TEXT = "SPACE:Start/Pause  K:Kill  R:Reset  F:Follow  +/-/Scroll:Zoom  ESC:Quit"


def parse_args(argv=None):
    genetic, sensors = GeneticOptions(), SensorOptions()
    parser = argparse.ArgumentParser(prog="neural-racing", description=__doc__.strip().splitlines()[0])
    parser.add_argument("--track", default=None, help="CSV file of x,y[,width] centerline points")
    parser.add_argument("--generation-size", type=int, default=genetic.generation_size)
    parser.add_argument("--hidden-nodes", type=int, default=genetic.num_hidden_nodes)
    parser.add_argument("--sensors", type=int, default=sensors.num_sensors, help="odd number of sensors")
    parser.add_argument("--breeders", type=int, default=genetic.num_breeders)
    parser.add_argument("--elites", type=int, default=genetic.num_best_performers_to_keep)
    parser.add_argument("--random", type=int, default=genetic.num_random,
                        help="fresh random networks per generation")
    parser.add_argument("--mutation-chance", type=float, default=genetic.mutation_chance)
    parser.add_argument("--mutation-amount", type=float, default=genetic.mutation_amount)
    parser.add_argument("--seed", type=int, default=None)
    parser.add_argument("--ticks-per-frame", type=int, default=1)
    parser.add_argument("--fps", type=int, default=TARGET_FPS)
    parser.add_argument("--headless", action="store_true", help="no window, stop after --generations")
    parser.add_argument("--generations", type=int, default=10)
    parser.add_argument("--device", default=None, help="torch device, default cuda when available")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    args = parser.parse_args(argv)
    if args.ticks_per_frame < 1:
        parser.error("--ticks-per-frame must be at least 1")
    if args.generations < 1:
        parser.error("--generations must be at least 1")
    return args


def build_options(args):
    """Option dataclasses from parsed arguments; invalid combinations raise ConfigurationError."""
    sensor_options = SensorOptions(num_sensors=args.sensors)
    genetic_options = GeneticOptions(
        generation_size=args.generation_size,
        num_best_performers_to_keep=args.elites,
        num_breeders=args.breeders,
        num_random=args.random,
        num_hidden_nodes=args.hidden_nodes,
        mutation_chance=args.mutation_chance,
        mutation_amount=args.mutation_amount,
    )
    return sensor_options, EpisodeOptions(), genetic_options


def load_track(path=None):
    if path is None:
        return default_track()
    return load_track_csv(path)


def seed_everything(seed):
    random.seed(seed)
    torch.manual_seed(seed)


def create_world():
    from .box2d_world import Box2DWorld

    return Box2DWorld()


def run_headless(simulator, generations):
    """Evolve until `generations` generations have been bred."""
    simulator.start()
    while simulator.generation < generations:
        simulator.tick()
    logger.info("Finished %d generations, best fitness %.2f", simulator.generation, simulator.best_fitness)
    return simulator.best_fitness


def handle_key(key, simulator, camera):
    """Apply one key press. Returns False when the app should quit."""
    import pygame

    if key == pygame.K_ESCAPE:
        return False
    if key == pygame.K_SPACE:
        if simulator.running:
            simulator.stop()
        else:
            simulator.start()
    elif key == pygame.K_k:
        simulator.kill_current_simulation()
    elif key == pygame.K_r:
        simulator.reset()
    elif key == pygame.K_f:
        camera.following = not camera.following
    elif key in (pygame.K_EQUALS, pygame.K_PLUS, pygame.K_KP_PLUS):
        camera.zoom_in()
    elif key in (pygame.K_MINUS, pygame.K_KP_MINUS):
        camera.zoom_out()
    return True


def run_window(simulator, fps, ticks_per_frame):
    import pygame

    from .render import Camera, HudStatus, PygameRenderer

    os.environ["SDL_VIDEO_CENTERED"] = "1"
    pygame.init()
    screen = pygame.display.set_mode((WIDTH, HEIGHT))
    pygame.display.set_caption("Neural Racing")
    clock = pygame.time.Clock()
    font = pygame.font.SysFont("Consolas", 18)
    font_large = pygame.font.SysFont("Consolas", 26, bold=True)

    camera = Camera(WIDTH, HEIGHT)
    camera.jump_to(*simulator.track.initial_position)
    hud = HudStatus()
    renderer = PygameRenderer(screen, camera, font)
    simulator.status = hud
    simulator.renderer = renderer
    simulator.reset()

    running = True
    while running:
        dt = min(clock.tick(fps) / 1000.0, 0.05)

        for event in pygame.event.get():
            if event.type == pygame.QUIT:
                running = False
            elif event.type == pygame.KEYDOWN:
                running = handle_key(event.key, simulator, camera)
            elif event.type == pygame.MOUSEWHEEL:
                if event.y > 0:
                    camera.zoom_in()
                else:
                    camera.zoom_out()

        camera.update(dt)
        if simulator.running:
            for _ in range(ticks_per_frame):
                simulator.tick()
        else:
            renderer.draw(simulator.active_simulation.snapshot(), simulator.trails)

        hud.draw(screen, font, [
            f"Zoom: {camera.zoom:.2f}x  |  Follow: {'ON' if camera.following else 'OFF'}  |  FPS: {clock.get_fps():.0f}",
        ])
        if simulator.state is SchedulerState.PAUSED:
            txt = font_large.render("PAUSED - SPACE to continue", True, (255, 255, 0))
            screen.blit(txt, (WIDTH // 2 - txt.get_width() // 2, HEIGHT // 2))
        elif simulator.state is SchedulerState.RESET:
            txt = font_large.render("SPACE to start", True, (255, 255, 0))
            screen.blit(txt, (WIDTH // 2 - txt.get_width() // 2, HEIGHT // 2))

        help_txt = font.render(HELP_TEXT, True, (130, 130, 130))
        screen.blit(help_txt, (WIDTH // 2 - help_txt.get_width() // 2, HEIGHT - 24))
        pygame.display.flip()

    pygame.quit()


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(level=args.log_level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if args.seed is not None:
        seed_everything(args.seed)
    setup_device(args.device)

    sensor_options, episode_options, genetic_options = build_options(args)
    track = load_track(args.track)
    logger.info("Track with %d points, %.0f px long", len(track), track.total_track_length)

    simulator = Simulator(
        track,
        create_world(),
        genetic_options=genetic_options,
        sensor_options=sensor_options,
        episode_options=episode_options,
        rng=random.Random(args.seed),
    )

    if args.headless:
        run_headless(simulator, args.generations)
    else:
        run_window(simulator, args.fps, args.ticks_per_frame)
