#!/usr/bin/env python3
"""
Example usage of match pruning on an image pair
"""

import argparse
import logging
import sys
import time
from pathlib import Path

import cv2

# Add the project root to Python path
sys.path.append(str(Path(__file__).parent))

from matchprune import PrunerConfig, MatchPruner
from matchprune.utils.image_matching import ImageMatcher, FeatureType, MatcherType
from matchprune.utils.visualization import draw_matches

logger = logging.getLogger(__name__)


def parse_args():
    parser = argparse.ArgumentParser(description="Prune putative matches between two images")

    parser.add_argument("query_image", type=str, help="Query image path")
    parser.add_argument("reference_image", type=str, help="Reference image path")
    parser.add_argument(
        "--feature",
        type=str,
        default="sift",
        choices=[f.value for f in FeatureType],
        help="Keypoint detector / descriptor",
    )
    parser.add_argument(
        "--matcher",
        type=str,
        default="bf",
        choices=[m.value for m in MatcherType],
        help="Descriptor matcher",
    )
    parser.add_argument(
        "--method",
        type=str,
        default="gms",
        choices=["ratio", "gms", "lpm"],
        help="Pruning method",
    )
    parser.add_argument(
        "--output", type=str, default="matching_result.jpg", help="Where to write the drawing"
    )
    parser.add_argument(
        "--log_level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )

    return parser.parse_args()


def main():
    args = parse_args()
    config = PrunerConfig(method=args.method, log_level=args.log_level)

    logging.basicConfig(
        level=getattr(logging, config.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    img0 = cv2.imread(args.query_image)
    img1 = cv2.imread(args.reference_image)
    if img0 is None or img1 is None:
        logger.error(f"Could not read {args.query_image} or {args.reference_image}")
        return 1

    start = time.time()
    image_matcher = ImageMatcher(img0, img1, FeatureType(args.feature), MatcherType(args.matcher), knn=2)
    pruner = MatchPruner(image_matcher.putative_matches(), config=config)
    points0, points1 = pruner.get_matched_points()
    logger.info(f"cost time: {(time.time() - start) * 1000:.1f} ms, {len(points0)} matches kept")

    canvas = draw_matches(img0, img1, points0, points1)
    cv2.imwrite(args.output, canvas)
    logger.info(f"Matching result written to {args.output}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
