from __future__ import annotations

"""Human-like pointer trajectories and pacing."""

import math
import random
import time
from typing import Callable, List, Optional, Tuple

from . import config
from .dom import Element, PageSession, Point, Region
from .error_codes import AutomationError
from .logging_utils import _harvester_event


def smoothstep(t: float) -> float:
    """Ease-in/ease-out curve ``t^2 (3 - 2t)`` on ``[0, 1]``."""

    t = min(1.0, max(0.0, t))
    return t * t * (3 - 2 * t)


def cubic_bezier(p0: Point, p1: Point, p2: Point, p3: Point, t: float) -> Point:
    u = 1 - t
    x = u ** 3 * p0.x + 3 * u ** 2 * t * p1.x + 3 * u * t ** 2 * p2.x + t ** 3 * p3.x
    y = u ** 3 * p0.y + 3 * u ** 2 * t * p1.y + 3 * u * t ** 2 * p2.y + t ** 3 * p3.y
    return Point(x, y)


class HumanizedInputSynthesizer:
    """Synthesize pointer paths and randomized pauses for one session.

    The last synthesized pointer position is kept on the instance so paths
    chain naturally from one target to the next.
    """

    MIN_DEVIATION_PX = 50.0
    DEVIATION_RATIO = 0.25
    TARGET_MARGIN = 0.2

    def __init__(
        self,
        *,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
        micro_pause_ms: Tuple[int, int] = (config.MICRO_PAUSE_MIN_MS, config.MICRO_PAUSE_MAX_MS),
        micro_pause_probability: float = config.MICRO_PAUSE_PROBABILITY,
        steps: Tuple[int, int] = (10, 60),
    ) -> None:
        self.rng = rng or random.Random()
        self._sleep = sleep
        self.micro_pause_ms = micro_pause_ms
        self.micro_pause_probability = micro_pause_probability
        self.steps = steps
        self.last_position: Optional[Point] = None

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    def pick_target_point(self, region: Region) -> Point:
        """Random point inside the central 60% of *region*."""

        span = 1 - 2 * self.TARGET_MARGIN
        return Point(
            region.x + region.width * self.TARGET_MARGIN + self.rng.random() * region.width * span,
            region.y + region.height * self.TARGET_MARGIN + self.rng.random() * region.height * span,
        )

    def _start_point(self, viewport: Optional[Region]) -> Point:
        if self.last_position is not None:
            return self.last_position
        if viewport is None:
            return Point(0.0, 0.0)
        return Point(
            viewport.x + self.rng.random() * viewport.width,
            viewport.y + self.rng.random() * viewport.height,
        )

    def plan_path(self, target: Region, viewport: Optional[Region] = None) -> List[Point]:
        """Return the sampled pointer path from the current position to *target*.

        Two control points sit at one and two thirds of the straight path,
        pushed sideways by a random signed offset bounded by
        ``max(50, 0.25 * distance)``. Sampling uses smoothstep easing, so
        points bunch up near both ends. The last point is the target point.
        """

        start = self._start_point(viewport)
        end = self.pick_target_point(target)

        dx = end.x - start.x
        dy = end.y - start.y
        distance = math.hypot(dx, dy)
        deviation = max(self.MIN_DEVIATION_PX, distance * self.DEVIATION_RATIO)

        if distance > 0:
            perp_x, perp_y = -dy / distance, dx / distance
        else:
            perp_x, perp_y = 1.0, 0.0

        offset1 = self.rng.uniform(-1.0, 1.0) * deviation
        offset2 = self.rng.uniform(-1.0, 1.0) * deviation
        control1 = Point(start.x + dx * 0.33 + perp_x * offset1, start.y + dy * 0.33 + perp_y * offset1)
        control2 = Point(start.x + dx * 0.66 + perp_x * offset2, start.y + dy * 0.66 + perp_y * offset2)

        step_count = self.rng.randint(self.steps[0], self.steps[1])
        path = [
            cubic_bezier(start, control1, control2, end, smoothstep(i / step_count))
            for i in range(1, step_count + 1)
        ]
        path[-1] = end
        return path

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def move_to(self, session: PageSession, element: Element) -> bool:
        """Move the pointer along a humanized path onto *element*."""

        try:
            region = element.bounding_region()
            if region is None:
                return False
            path = self.plan_path(region, session.viewport())
            for point in path:
                session.pointer.move(point.x, point.y)
                if self.rng.random() < self.micro_pause_probability:
                    self.micro_pause()
        except AutomationError as exc:
            # Element detached mid-move; the caller falls back to a plain click.
            _harvester_event("input", step="move_failed", error=str(exc))
            return False

        self.last_position = path[-1]
        return True

    def press(self, session: PageSession) -> None:
        """Click at the current pointer position."""

        session.pointer.down()
        self.micro_pause()
        session.pointer.up()

    def idle(self, session: PageSession) -> None:
        """Small pointer drift plus a short wheel scroll."""

        origin = self.last_position or self._start_point(session.viewport())
        try:
            for _ in range(self.rng.randint(2, 6)):
                origin = Point(
                    max(0.0, origin.x + self.rng.uniform(-40, 40)),
                    max(0.0, origin.y + self.rng.uniform(-30, 30)),
                )
                session.pointer.move(origin.x, origin.y)
                self.micro_pause()
            session.pointer.wheel(0, self.rng.choice((-1, 1)) * self.rng.randint(40, 200))
        except AutomationError as exc:
            _harvester_event("input", step="idle_failed", error=str(exc))
            return
        self.last_position = origin

    # ------------------------------------------------------------------
    # Pacing
    # ------------------------------------------------------------------

    def micro_pause(self) -> float:
        low, high = self.micro_pause_ms
        wait_ms = self.rng.randint(min(low, high), max(low, high))
        self._sleep(wait_ms / 1000.0)
        return wait_ms / 1000.0

    def random_wait(self, min_seconds: float, max_seconds: float) -> float:
        low, high = sorted((max(0.0, min_seconds), max(0.0, max_seconds)))
        wait = self.rng.uniform(low, high)
        if wait > 0:
            self._sleep(wait)
        return wait


__all__ = ["HumanizedInputSynthesizer", "smoothstep", "cubic_bezier"]
