"""
I/O utilities for pruning results
"""

import numpy as np
import json
from typing import Dict, Any, Hashable
from pathlib import Path

from ..core.correspondences import Correspondence, PruningResult


def save_pruning_results(results: Dict[Hashable, PruningResult], filepath: Path):
    """Save pruning results of many image pairs in H5 format"""
    import h5py

    with h5py.File(filepath, 'w') as f:
        for i, (pair, result) in enumerate(results.items()):
            grp = f.create_group(f'pair_{i}')
            if isinstance(pair, tuple):
                grp.attrs['img1'] = str(pair[0])
                grp.attrs['img2'] = str(pair[1])
            else:
                grp.attrs['key'] = str(pair)
            grp.attrs['method'] = result.method

            matches = np.array([[m.query_idx, m.reference_idx] for m in result.matches],
                               dtype=np.int64).reshape(-1, 2)
            distances = np.array([m.distance for m in result.matches], dtype=np.float64)
            grp.create_dataset('matches', data=matches)
            grp.create_dataset('distances', data=distances)
            grp.create_dataset('scores', data=result.scores)
            grp.create_dataset('knn_distances', data=result.knn_distances)
            grp.create_dataset('query_points', data=result.query_points)
            grp.create_dataset('reference_points', data=result.reference_points)
            grp.create_dataset('rows', data=result.rows)


def load_pruning_results(filepath: Path) -> Dict[Hashable, PruningResult]:
    """Load pruning results from H5 format in the order they were saved

    Pair keys are stored as attributes, so they come back as strings.
    """
    import h5py

    results = {}
    with h5py.File(filepath, 'r') as f:
        # Group names sort lexicographically (pair_10 before pair_2)
        group_names = sorted(f.keys(), key=lambda name: int(name.split('_')[-1]))
        for group_name in group_names:
            grp = f[group_name]
            if 'key' in grp.attrs:
                pair = grp.attrs['key']
            else:
                pair = (grp.attrs['img1'], grp.attrs['img2'])

            matches = grp['matches'][:]
            distances = grp['distances'][:]
            results[pair] = PruningResult(
                matches=[Correspondence(int(q), int(r), float(d))
                         for (q, r), d in zip(matches, distances)],
                scores=grp['scores'][:],
                knn_distances=grp['knn_distances'][:],
                query_points=grp['query_points'][:],
                reference_points=grp['reference_points'][:],
                method=str(grp.attrs['method']),
                rows=grp['rows'][:],
            )

    return results


def save_pruning_summary(filepath: Path, results: Dict[Hashable, PruningResult],
                         config: Dict[str, Any] = None):
    """Save per-pair match counts and mean scores in JSON format"""
    pairs = {}
    for pair, result in results.items():
        key = '-'.join(str(p) for p in pair) if isinstance(pair, tuple) else str(pair)
        pairs[key] = {
            'method': result.method,
            'num_matches': len(result),
            'mean_score': float(np.mean(result.scores)) if len(result) else None,
        }

    summary = {
        'num_pairs': len(results),
        'num_matches': int(sum(len(r) for r in results.values())),
        'config': config or {},
        'pairs': pairs,
    }

    with open(filepath, 'w') as f:
        json.dump(summary, f, indent=2)
