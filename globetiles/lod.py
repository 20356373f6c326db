class LodSelector:
    """Maps camera-to-surface distance to a detail level

    Parameters
    ----------
    thresholds : iterable[(float, int)]
        (distance, level) pairs. A threshold is crossed once the camera is
        strictly closer than its distance; the finest crossed level wins.
    max_level : int
        Upper clamp for the result
    base_level : int
        Level used while no threshold is crossed

    Remarks
    -------
    - Closer never gives a coarser level, since the crossed set only grows
    - A camera exactly at a threshold distance stays on the coarser side
    """

    def __init__(self, thresholds, max_level: int, base_level: int = 0):
        if max_level < 0:
            raise ValueError("max_level must be >= 0")
        pairs = []
        for distance, level in thresholds:
            if distance <= 0:
                raise ValueError(f"LOD threshold distance must be > 0, got {distance}")
            if level < 0:
                raise ValueError(f"LOD level must be >= 0, got {level}")
            pairs.append((float(distance), int(level)))
        distances = [d for d, _ in pairs]
        if len(set(distances)) != len(distances):
            raise ValueError("duplicate LOD threshold distance")
        # farthest first
        self.thresholds = tuple(sorted(pairs, key=lambda p: -p[0]))
        self.max_level = int(max_level)
        self.base_level = self._clamp(int(base_level))

    def _clamp(self, level: int) -> int:
        return max(0, min(self.max_level, level))

    def select(self, distance: float) -> int:
        '''Detail level for a camera `distance` meters above the surface'''
        distance = max(float(distance), 0.0)
        level = self.base_level
        for threshold, threshold_level in self.thresholds:
            if distance < threshold:
                level = max(level, threshold_level)
        return self._clamp(level)

    __call__ = select

    def __repr__(self):
        return (f'LodSelector(thresholds={list(self.thresholds)}, '
                f'max_level={self.max_level}, base_level={self.base_level})')
