"""
OpenCV correspondence source

Detects keypoints, computes descriptors and finds the k nearest reference
descriptors of every query descriptor, producing the PutativeMatches that
the pruners consume.
"""

import numpy as np
import cv2
import logging
from enum import Enum
from typing import List, Tuple, Any

from ..core.correspondences import PutativeMatches
from ..core.errors import ConfigurationError

logger = logging.getLogger(__name__)


class FeatureType(Enum):
    """Keypoint detector / descriptor extractor"""
    SIFT = "sift"
    ORB = "orb"
    AKAZE = "akaze"
    ROOTSIFT = "rootsift"
    HALFSIFT = "halfsift"


class MatcherType(Enum):
    """Descriptor matcher"""
    BF = "bf"
    FLANN = "flann"


def root_sift(descriptors: np.ndarray) -> np.ndarray:
    """L1-normalize SIFT descriptors and take the element-wise square root"""
    if descriptors is None or len(descriptors) == 0:
        return descriptors
    descriptors = descriptors.astype(np.float32)
    norms = np.abs(descriptors).sum(axis=1, keepdims=True)
    descriptors = descriptors / np.maximum(norms, np.finfo(np.float32).eps)
    return np.sqrt(descriptors)


def half_sift(descriptors: np.ndarray) -> np.ndarray:
    """
    Fold opposite gradient orientations of SIFT descriptors

    Each of the 16 histograms has 8 orientation bins; bin o and bin o + 4
    are replaced by their sum, making the descriptor invariant to contrast
    reversal.
    """
    if descriptors is None or len(descriptors) == 0:
        return descriptors
    hist = descriptors.astype(np.float32).reshape(-1, 16, 8)
    folded = hist[:, :, :4] + hist[:, :, 4:]
    return np.concatenate([folded, folded], axis=2).reshape(-1, 128)


def _to_gray(image: np.ndarray) -> np.ndarray:
    if image.ndim == 3:
        return cv2.cvtColor(image, cv2.COLOR_BGR2GRAY)
    return image


class ImageMatcher:
    """
    Feature extraction and k-NN descriptor matching for an image pair

    Parameters
    ----------
    query_image : numpy.ndarray
        Query image (H x W) or (H x W x 3), uint8
    reference_image : numpy.ndarray
        Reference image
    feature_type : FeatureType
        Detector / descriptor (default SIFT)
    matcher_type : MatcherType
        Brute force or FLANN (default BF)
    knn : int
        Number of candidates per query keypoint (default 2)
    """

    def __init__(self,
                 query_image: np.ndarray,
                 reference_image: np.ndarray,
                 feature_type: FeatureType = FeatureType.SIFT,
                 matcher_type: MatcherType = MatcherType.BF,
                 knn: int = 2):
        if query_image is None or reference_image is None:
            raise ValueError("Input images are None")
        if knn < 1:
            raise ConfigurationError(f"knn must be at least 1, got {knn}")

        self.query_image = query_image
        self.reference_image = reference_image
        self.feature_type = FeatureType(feature_type)
        self.matcher_type = MatcherType(matcher_type)
        self.knn = knn

        self.query_keypoints, self.query_descriptors = self._extract(query_image)
        self.reference_keypoints, self.reference_descriptors = self._extract(reference_image)
        self.knn_matches = self._match()

        logger.info(f"{self.feature_type.value}: {len(self.query_keypoints)} query / "
                    f"{len(self.reference_keypoints)} reference keypoints, "
                    f"{len(self.knn_matches)} candidate lists")

    def _create_detector(self):
        if self.feature_type in (FeatureType.SIFT, FeatureType.ROOTSIFT, FeatureType.HALFSIFT):
            return cv2.SIFT_create()
        if self.feature_type == FeatureType.ORB:
            return cv2.ORB_create()
        if self.feature_type == FeatureType.AKAZE:
            return cv2.AKAZE_create()
        raise ConfigurationError(f"Unknown feature type: {self.feature_type}")

    def _extract(self, image: np.ndarray) -> Tuple[List[Any], np.ndarray]:
        detector = self._create_detector()
        keypoints, descriptors = detector.detectAndCompute(_to_gray(image), None)
        if descriptors is None:
            return [], np.zeros((0, 0), dtype=np.float32)

        if self.feature_type == FeatureType.ROOTSIFT:
            descriptors = root_sift(descriptors)
        elif self.feature_type == FeatureType.HALFSIFT:
            descriptors = half_sift(descriptors)

        # FLANN needs float descriptors; binary descriptors are compared with L2 as well
        return list(keypoints), descriptors.astype(np.float32)

    def _match(self) -> List[List[Any]]:
        if len(self.query_descriptors) == 0 or len(self.reference_descriptors) == 0:
            return []

        if self.matcher_type == MatcherType.FLANN:
            index_params = dict(algorithm=1, trees=5)  # KDTree
            search_params = dict(checks=50)
            matcher = cv2.FlannBasedMatcher(index_params, search_params)
        else:
            matcher = cv2.BFMatcher(cv2.NORM_L2, crossCheck=False)

        knn_matches = matcher.knnMatch(self.query_descriptors, self.reference_descriptors, k=self.knn)

        complete = [list(row) for row in knn_matches if len(row) == self.knn]
        dropped = len(knn_matches) - len(complete)
        if dropped:
            logger.warning(f"Dropped {dropped} query keypoints with fewer than {self.knn} candidates")
        return complete

    def keypoints(self) -> Tuple[List[Any], List[Any]]:
        return self.query_keypoints, self.reference_keypoints

    def matches(self) -> List[List[Any]]:
        return self.knn_matches

    def putative_matches(self) -> PutativeMatches:
        """Candidate lists as PutativeMatches (image sizes taken from the images)"""
        query_h, query_w = self.query_image.shape[:2]
        reference_h, reference_w = self.reference_image.shape[:2]
        return PutativeMatches.from_knn_matches(
            self.query_keypoints, self.reference_keypoints,
            (query_w, query_h), (reference_w, reference_h),
            self.knn_matches,
        )
