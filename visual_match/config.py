"""
Default parameters for extractors, metrics and the ranker.

Every value here is only a default: extractors and metrics take their
parameters as constructor arguments. Defaults can be overridden through
environment variables so programs can be tuned without code changes.
"""

import os

# Center patch (baseline program)
PATCH_SIZE = int(os.environ.get("PATCH_SIZE", "7"))

# Histogram bin counts
CHROMA_BINS = int(os.environ.get("CHROMA_BINS", "16"))
RGB_BINS = int(os.environ.get("RGB_BINS", "8"))
TEXTURE_BINS = int(os.environ.get("TEXTURE_BINS", "16"))

# Pixels darker than this (R+G+B) carry no chromaticity
MIN_INTENSITY = float(os.environ.get("CHROMA_MIN_INTENSITY", "1.0"))

# Canny thresholds for the edge density primitive
CANNY_LOW = int(os.environ.get("CANNY_LOW", "50"))
CANNY_HIGH = int(os.environ.get("CANNY_HIGH", "150"))

# Fused histogram weights (top/bottom or color/texture)
FUSED_WEIGHT_A = float(os.environ.get("FUSED_WEIGHT_A", "0.5"))
FUSED_WEIGHT_B = float(os.environ.get("FUSED_WEIGHT_B", "0.5"))

# Warm scene descriptor and distance.
# The weights and the gradient scale are empirical; tune per collection.
WARM_REGION = float(os.environ.get("WARM_REGION", "0.6"))
WARM_MIN_RED = float(os.environ.get("WARM_MIN_RED", "100"))
WARM_RED_RATIO = float(os.environ.get("WARM_RED_RATIO", "1.2"))
WARM_SCENE_WEIGHTS = {
    "warm":      float(os.environ.get("SCENE_WARM_W", "0.40")),
    "gradient":  float(os.environ.get("SCENE_GRADIENT_W", "0.20")),
    "edge":      float(os.environ.get("SCENE_EDGE_W", "0.10")),
    "embedding": float(os.environ.get("SCENE_EMBEDDING_W", "0.30")),
}
GRADIENT_SCALE = float(os.environ.get("SCENE_GRADIENT_SCALE", "50.0"))

# Live DNN embeddings (ResNet18 ONNX export)
DNN_INPUT_SIZE = int(os.environ.get("DNN_INPUT_SIZE", "224"))
DNN_SCALE = (1.0 / 255.0) * (1.0 / 0.226)
DNN_MEAN = (124.0, 116.0, 104.0)
DNN_OUTPUT_LAYER = os.environ.get(
    "DNN_OUTPUT_LAYER", "onnx_node!resnetv22_flatten0_reshape0"
)

# Ranking
RANK_WORKERS = int(os.environ.get("RANK_WORKERS", "1"))
PROGRESS_EVERY = 500
