"""
Compute service access: task lifecycle client and orthomosaic asset resolution.
"""

from skymosaic.compute.assets import (
    BUNDLE_NAME,
    CANONICAL_PATHS,
    download_orthomosaic,
    extract_orthomosaic,
    normalize_asset_list,
    rank_candidates,
)
from skymosaic.compute.client import (
    STAGE_LABELS,
    ComputeClient,
    TaskStatus,
    TaskStatusCode,
)

__all__ = [
    "BUNDLE_NAME",
    "CANONICAL_PATHS",
    "download_orthomosaic",
    "extract_orthomosaic",
    "normalize_asset_list",
    "rank_candidates",
    "STAGE_LABELS",
    "ComputeClient",
    "TaskStatus",
    "TaskStatusCode",
]
