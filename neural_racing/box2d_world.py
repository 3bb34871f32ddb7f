"""
Box2D implementation of the physics contract in `physics.py`.

World coordinates are in pixels; Box2D works best with bodies of a few
meters, so everything is scaled by PIXELS_PER_METER on the way in and out.
"""

import itertools
import math
from collections import deque

import Box2D
from Box2D import b2ContactListener, b2FixtureDef, b2PolygonShape, b2RayCastCallback

from .physics import ContactEvent, RayHit, Subscription

PIXELS_PER_METER = 10.0
VELOCITY_ITERATIONS = 6
POSITION_ITERATIONS = 2
LINEAR_DAMPING = 0.1
ANGULAR_DAMPING = 0.1


class ContactQueue(b2ContactListener):
    """Collects begin-contact events; Box2D forbids world changes inside Step."""

    def __init__(self):
        b2ContactListener.__init__(self)
        self.pending = deque()

    def BeginContact(self, contact):
        fixture_a, fixture_b = contact.fixtureA, contact.fixtureB
        self.pending.append(ContactEvent(
            body_a=fixture_a.body.userData,
            body_b=fixture_b.body.userData,
            group_a=fixture_a.filterData.categoryBits,
            group_b=fixture_b.filterData.categoryBits,
        ))


class ClosestHit(b2RayCastCallback):
    def __init__(self, mask):
        b2RayCastCallback.__init__(self)
        self.mask = mask
        self.hit = None

    def ReportFixture(self, fixture, point, normal, fraction):
        if not fixture.filterData.categoryBits & self.mask:
            return -1.0
        self.hit = ((point[0], point[1]), (normal[0], normal[1]), fraction)
        # clip the ray so only closer fixtures are reported afterwards
        return fraction


class Wheel:
    def __init__(self, spec, scale):
        self.local_position = (spec.local_position[0] / scale, spec.local_position[1] / scale)
        self.side_friction = spec.side_friction
        self.base_brake_force = spec.brake_force
        self.steered = spec.steered
        self.driven = spec.driven
        self.steer = 0.0
        self.engine_force = 0.0
        self.brake_force = spec.brake_force


class Box2DVehicle:
    """
    Top-down car: per wheel, an engine force along its rolling direction,
    a brake force opposing rolling speed and a side friction force that
    cancels lateral slip, each capped by its configured maximum.
    """

    def __init__(self, body_id, body, wheels, scale):
        self.body_id = body_id
        self.body = body
        self.wheels = wheels
        self._scale = scale

    @property
    def position(self):
        p = self.body.position
        return (p[0] * self._scale, p[1] * self._scale)

    @property
    def angle(self):
        return self.body.angle

    @property
    def speed(self):
        driven = [wheel for wheel in self.wheels if wheel.driven] or self.wheels
        return sum(self._forward_speed(wheel) for wheel in driven) / len(driven)

    def place(self, position, angle):
        self.body.position = (position[0] / self._scale, position[1] / self._scale)
        self.body.angle = angle
        self.body.linearVelocity = (0, 0)
        self.body.angularVelocity = 0
        self.body.awake = True
        for wheel in self.wheels:
            wheel.steer = wheel.engine_force = 0.0
            wheel.brake_force = wheel.base_brake_force

    def set_controls(self, steer, engine_force, brake_force):
        for wheel in self.wheels:
            if wheel.steered:
                wheel.steer = steer
            if wheel.driven:
                wheel.engine_force = engine_force
                wheel.brake_force = brake_force

    def _axes(self, wheel):
        heading = self.body.angle + wheel.steer
        forward = (-math.sin(heading), math.cos(heading))
        right = (forward[1], -forward[0])
        return forward, right

    def _forward_speed(self, wheel):
        forward, _ = self._axes(wheel)
        point = self.body.GetWorldPoint(wheel.local_position)
        velocity = self.body.GetLinearVelocityFromWorldPoint(point)
        return (velocity[0] * forward[0] + velocity[1] * forward[1]) * self._scale

    def apply_forces(self, dt):
        mass_share = self.body.mass / len(self.wheels)
        for wheel in self.wheels:
            forward, right = self._axes(wheel)
            point = self.body.GetWorldPoint(wheel.local_position)
            velocity = self.body.GetLinearVelocityFromWorldPoint(point)
            # pixel units from here on
            forward_speed = (velocity[0] * forward[0] + velocity[1] * forward[1]) * self._scale
            side_speed = (velocity[0] * right[0] + velocity[1] * right[1]) * self._scale

            side_force = _clamp(-side_speed * mass_share / dt, wheel.side_friction)
            brake = _clamp(-forward_speed * mass_share / dt, wheel.brake_force)
            forward_force = wheel.engine_force + brake

            force = (
                (forward[0] * forward_force + right[0] * side_force) / self._scale,
                (forward[1] * forward_force + right[1] * side_force) / self._scale,
            )
            self.body.ApplyForce(force, point, True)


def _clamp(value, limit):
    return max(-limit, min(limit, value))


class Box2DWorld:
    def __init__(self, pixels_per_meter=PIXELS_PER_METER):
        self._scale = pixels_per_meter
        self._listener = ContactQueue()
        self._world = Box2D.b2World((0, 0), contactListener=self._listener)
        self._bodies = {}
        self._vehicles = []
        self._handlers = {}
        self._ids = itertools.count(1)
        self._tokens = itertools.count(1)

    @property
    def handler_count(self):
        return len(self._handlers)

    def clear(self):
        for body in self._bodies.values():
            self._world.DestroyBody(body)
        self._bodies = {}
        self._vehicles = []
        self._listener.pending.clear()

    def _register(self, body):
        body_id = next(self._ids)
        body.userData = body_id
        self._bodies[body_id] = body
        return body_id

    def add_static_box(self, center, angle, width, height, group, mask, sensor=False):
        body = self._world.CreateStaticBody(
            position=(center[0] / self._scale, center[1] / self._scale),
            angle=angle,
            fixtures=b2FixtureDef(
                shape=b2PolygonShape(box=(width / 2 / self._scale, height / 2 / self._scale)),
                isSensor=sensor,
                categoryBits=group,
                maskBits=mask,
            ),
        )
        return self._register(body)

    def add_vehicle(self, width, height, mass, group, mask, wheels):
        half_w, half_h = width / 2 / self._scale, height / 2 / self._scale
        body = self._world.CreateDynamicBody(
            position=(0, 0),
            linearDamping=LINEAR_DAMPING,
            angularDamping=ANGULAR_DAMPING,
            bullet=True,
            fixtures=b2FixtureDef(
                shape=b2PolygonShape(box=(half_w, half_h)),
                density=mass / (4 * half_w * half_h),
                categoryBits=group,
                maskBits=mask,
            ),
        )
        vehicle = Box2DVehicle(
            self._register(body), body, [Wheel(spec, self._scale) for spec in wheels], self._scale
        )
        self._vehicles.append(vehicle)
        return vehicle

    def step(self, dt):
        for vehicle in self._vehicles:
            vehicle.apply_forces(dt)
        self._world.Step(dt, VELOCITY_ITERATIONS, POSITION_ITERATIONS)
        self._world.ClearForces()

        pending = self._listener.pending
        while pending:
            event = pending.popleft()
            for handler in list(self._handlers.values()):
                handler(event)

    def subscribe(self, handler):
        token = next(self._tokens)
        self._handlers[token] = handler
        return Subscription(lambda: self._handlers.pop(token, None))

    def raycast_closest(self, start, end, mask):
        callback = ClosestHit(mask)
        p1 = (start[0] / self._scale, start[1] / self._scale)
        p2 = (end[0] / self._scale, end[1] / self._scale)
        if p1 == p2:
            return None
        self._world.RayCast(callback, p1, p2)
        if callback.hit is None:
            return None
        point, normal, fraction = callback.hit
        return RayHit(
            distance=fraction * math.dist(start, end),
            point=(point[0] * self._scale, point[1] * self._scale),
            normal=normal,
        )
