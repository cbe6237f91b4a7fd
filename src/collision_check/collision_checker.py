"""Sphere-based collision checking with discrete and swept queries.

Each link carries one or more spheres placed in its frame. Distances are
signed: positive means separated, negative means penetration.

Query types:
1. Discrete: sphere-sphere and sphere-ground distances at one configuration.
2. Swept: sphere centers move linearly between two configurations; the
   pair distance is the segment-segment distance minus the radii. This is
   the capsule hull of the motion, which is conservative.
3. Trajectory: swept query over every segment of a trajectory, reporting
   pairs closer than ``contact_distance``.
"""

from dataclasses import dataclass

import numpy as np

from kinematics import PinocchioKinematics

from .distance import segment_distance

GROUND = "ground"


@dataclass
class CollisionConfig:
    """Configuration for sphere-based collision checking.

    Attributes:
        contact_distance: Pairs closer than this are reported as
            collisions by ``check_trajectory`` [m].
        ground_z: Height of the ground plane; None disables it [m].
        enabled: Whether collision queries return anything.
    """

    contact_distance: float = 0.0
    ground_z: float | None = None
    enabled: bool = True


@dataclass(frozen=True)
class CollisionSphere:
    """Sphere attached to a link frame.

    Attributes:
        link: Frame the sphere moves with.
        center: Sphere center in the link frame (3,) [m].
        radius: Sphere radius [m].
    """

    link: str
    center: tuple[float, float, float]
    radius: float


@dataclass(frozen=True)
class ContactResult:
    """Signed distance between two links.

    Attributes:
        link_a: First link.
        link_b: Second link (``"ground"`` for the ground plane).
        distance: Signed distance [m].
        step: Trajectory segment start index for trajectory queries.
    """

    link_a: str
    link_b: str
    distance: float
    step: int | None = None


class CollisionChecker:
    """Sphere-based collision checker over a pinocchio model.

    A pair of spheres is checked when the spheres belong to different
    links, at least one link is active (in the queried ``link_names``) and
    the link pair is not in ``allowed_pairs``. Spheres on inactive links act
    as static obstacles.
    """

    def __init__(
        self,
        kinematics: PinocchioKinematics,
        spheres: list[CollisionSphere | tuple],
        allowed_pairs: list[tuple[str, str]] = (),
        config: CollisionConfig | None = None,
    ):
        """Initialize collision checker.

        Args:
            kinematics: Kinematic model the spheres are attached to.
            spheres: Collision spheres, or (link, center, radius) tuples.
            allowed_pairs: Link pairs never checked against each other.
            config: Collision configuration. Uses defaults if None.

        Raises:
            ValueError: If a sphere references an unknown frame.
        """
        self.kinematics = kinematics
        self.config = config or CollisionConfig()
        self.spheres = [
            s if isinstance(s, CollisionSphere) else CollisionSphere(*s)
            for s in spheres
        ]
        self._allowed = {frozenset(pair) for pair in allowed_pairs}

        self._links = []
        for sphere in self.spheres:
            if not kinematics.has_frame(sphere.link):
                raise ValueError(f"Unknown collision link '{sphere.link}'")
            if sphere.link not in self._links:
                self._links.append(sphere.link)

        self._centers = np.array(
            [s.center for s in self.spheres], dtype=np.float64,
        ).reshape(-1, 3)
        self._radii = np.array([s.radius for s in self.spheres], dtype=np.float64)
        self._pair_cache: dict[tuple[str, ...], list[tuple[int, int]]] = {}

    def is_allowed(self, link_a: str, link_b: str) -> bool:
        return frozenset((link_a, link_b)) in self._allowed

    def _active_pairs(self, link_names: list[str]) -> list[tuple[int, int]]:
        key = tuple(link_names)
        if key not in self._pair_cache:
            active = set(link_names)
            pairs = []
            for i, si in enumerate(self.spheres):
                for j in range(i + 1, len(self.spheres)):
                    sj = self.spheres[j]
                    if si.link == sj.link:
                        continue
                    if si.link not in active and sj.link not in active:
                        continue
                    if self.is_allowed(si.link, sj.link):
                        continue
                    pairs.append((i, j))
            self._pair_cache[key] = pairs
        return self._pair_cache[key]

    def _active_spheres(self, link_names: list[str]) -> list[int]:
        active = set(link_names)
        return [i for i, s in enumerate(self.spheres) if s.link in active]

    def sphere_centers(self, q: np.ndarray) -> np.ndarray:
        """World positions of all sphere centers (n_spheres, 3).

        Args:
            q: Full model configuration (nq,).
        """
        placements = self.kinematics.frame_placements(q, self._links)
        centers = np.empty_like(self._centers)
        for i, sphere in enumerate(self.spheres):
            T = placements[sphere.link]
            centers[i] = T[:3, :3] @ self._centers[i] + T[:3, 3]
        return centers

    def _collect(
        self,
        pair_distances: list[tuple[str, str, float]],
        step: int | None = None,
    ) -> list[ContactResult]:
        """Reduce sphere-level distances to one result per link pair."""
        closest: dict[tuple[str, str], float] = {}
        for link_a, link_b, dist in pair_distances:
            key = (link_a, link_b)
            if key not in closest or dist < closest[key]:
                closest[key] = dist
        return [
            ContactResult(link_a, link_b, dist, step)
            for (link_a, link_b), dist in closest.items()
        ]

    def distances(
        self,
        q: np.ndarray,
        link_names: list[str],
    ) -> list[ContactResult]:
        """Signed link-pair distances at one configuration.

        Args:
            q: Full model configuration (nq,).
            link_names: Active (moving) links.

        Returns:
            One ContactResult per checked link pair.
        """
        if not self.config.enabled:
            return []

        centers = self.sphere_centers(q)
        raw = []
        for i, j in self._active_pairs(link_names):
            dist = np.linalg.norm(centers[i] - centers[j])
            raw.append((
                self.spheres[i].link, self.spheres[j].link,
                float(dist - self._radii[i] - self._radii[j]),
            ))

        if self.config.ground_z is not None:
            for i in self._active_spheres(link_names):
                raw.append((
                    self.spheres[i].link, GROUND,
                    float(centers[i, 2] - self._radii[i] - self.config.ground_z),
                ))

        return self._collect(raw)

    def swept_distances(
        self,
        q_start: np.ndarray,
        q_end: np.ndarray,
        link_names: list[str],
        step: int | None = None,
    ) -> list[ContactResult]:
        """Signed link-pair distances over the motion q_start -> q_end.

        Args:
            q_start: Full model configuration at the segment start (nq,).
            q_end: Full model configuration at the segment end (nq,).
            link_names: Active (moving) links.
            step: Segment index recorded on the results.

        Returns:
            One ContactResult per checked link pair.
        """
        if not self.config.enabled:
            return []

        c0 = self.sphere_centers(q_start)
        c1 = self.sphere_centers(q_end)
        raw = []
        for i, j in self._active_pairs(link_names):
            dist = segment_distance(c0[i], c1[i], c0[j], c1[j])
            raw.append((
                self.spheres[i].link, self.spheres[j].link,
                dist - float(self._radii[i] + self._radii[j]),
            ))

        if self.config.ground_z is not None:
            for i in self._active_spheres(link_names):
                z_min = min(c0[i, 2], c1[i, 2])
                raw.append((
                    self.spheres[i].link, GROUND,
                    float(z_min - self._radii[i] - self.config.ground_z),
                ))

        return self._collect(raw, step)

    def check_trajectory(
        self,
        q_trajectory: np.ndarray,
        link_names: list[str],
    ) -> list[ContactResult]:
        """Continuous collision check along a trajectory.

        Every segment between consecutive configurations is checked with
        ``swept_distances``. A single configuration is checked discretely.

        Args:
            q_trajectory: Full model configurations (N, nq).
            link_names: Active (moving) links.

        Returns:
            Link pairs closer than ``contact_distance``, ordered by segment
            and then by pair.
        """
        q_trajectory = np.atleast_2d(np.asarray(q_trajectory, dtype=np.float64))
        threshold = self.config.contact_distance

        if len(q_trajectory) == 0:
            return []

        if len(q_trajectory) == 1:
            return [
                ContactResult(c.link_a, c.link_b, c.distance, 0)
                for c in self.distances(q_trajectory[0], link_names)
                if c.distance < threshold
            ]

        events = []
        for t in range(len(q_trajectory) - 1):
            contacts = self.swept_distances(
                q_trajectory[t], q_trajectory[t + 1], link_names, step=t,
            )
            events.extend(c for c in contacts if c.distance < threshold)
        return events
