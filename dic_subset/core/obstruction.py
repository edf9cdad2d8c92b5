"""Cross-subset obstruction rounds.

A round evaluates one candidate deformation per subset in two phases:

1. Barrier - every conformal subset's deformed footprint is computed and
   merged, by a single writer, into one read-only blocked-pixel snapshot
   per subset (the union of all *other* footprints).
2. Evaluation - each subset runs ``turn_off_obstructed_pixels`` against
   its snapshots, one subset per worker task.
"""

import time
from concurrent.futures import ThreadPoolExecutor
from typing import Dict, Hashable, Mapping, Optional

from dic_subset.core.subset import Subset
from dic_subset.utils.helpers import setup_logger

logger = setup_logger(__name__)


def _check_keys(subsets: Mapping, deformations: Mapping):
    missing = [sid for sid in subsets if sid not in deformations]
    if missing:
        raise KeyError(f"No deformation supplied for subsets: {missing}")


def subset_footprints(subsets: Mapping[Hashable, Subset],
                      deformations: Mapping[Hashable, object],
                      skin_factor: float = 1.0,
                      max_workers: Optional[int] = None) -> Dict[Hashable, frozenset]:
    """Deformed footprint of every subset (empty for non-conformal ones)."""
    _check_keys(subsets, deformations)

    def footprint(sid):
        subset = subsets[sid]
        return frozenset(subset.deformed_shapes(
            deformations[sid], subset.cx, subset.cy, skin_factor))

    ids = list(subsets)
    with ThreadPoolExecutor(max_workers=max_workers) as ex:
        results = list(ex.map(footprint, ids))
    return dict(zip(ids, results))


def collect_blocked_pixels(subsets: Mapping[Hashable, Subset],
                           deformations: Mapping[Hashable, object],
                           skin_factor: float = 1.0,
                           max_workers: Optional[int] = None) -> Dict[Hashable, frozenset]:
    """Blocked-pixel snapshot for each subset: pixels claimed by the others.

    Footprints are computed in parallel; the merge runs on the calling
    thread only.
    """
    footprints = subset_footprints(subsets, deformations, skin_factor, max_workers)
    claimed = {}
    for sid, coords in footprints.items():
        for coord in coords:
            claimed.setdefault(coord, set()).add(sid)

    blocked = {}
    for sid in subsets:
        blocked[sid] = frozenset(
            coord for coord, owners in claimed.items()
            if len(owners) > 1 or sid not in owners)
    logger.debug(f"Collected {len(claimed)} claimed pixels "
                 f"across {len(subsets)} subsets")
    return blocked


def evaluate_obstructions(subsets: Mapping[Hashable, Subset],
                          deformations: Mapping[Hashable, object],
                          obstructed_coords=None,
                          skin_factor: float = 1.0,
                          max_workers: Optional[int] = None) -> Dict[Hashable, int]:
    """Run one obstruction round over many subsets.

    Parameters
    ----------
    subsets : mapping of subset id -> Subset
    deformations : mapping of subset id -> candidate deformation vector
    obstructed_coords : optional iterable of (row, col); installed as the
        obstruction snapshot of every subset when given
    skin_factor : growth applied to conformal boundaries
    max_workers : worker threads for both phases

    Returns
    -------
    dict of subset id -> number of active pixels after the round
    """
    t0 = time.time()
    blocked = collect_blocked_pixels(subsets, deformations, skin_factor, max_workers)
    snapshot = frozenset(obstructed_coords) if obstructed_coords is not None else None
    for sid, subset in subsets.items():
        if snapshot is not None:
            subset.set_obstructed_coords(snapshot)
        subset.set_pixels_blocked_by_other_subsets(blocked[sid])

    def evaluate(sid):
        subset = subsets[sid]
        subset.turn_off_obstructed_pixels(deformations[sid])
        return subset.num_active_pixels()

    ids = list(subsets)
    with ThreadPoolExecutor(max_workers=max_workers) as ex:
        counts = list(ex.map(evaluate, ids))
    logger.info(f"Obstruction round over {len(ids)} subsets "
                f"completed in {time.time() - t0:.3f}s")
    return dict(zip(ids, counts))
