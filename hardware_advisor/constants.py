"""Estimation constants and tunable coefficient tables.

Every coefficient used by the resource estimator lives here so that the
formulas can be audited and overridden in isolation from the search and
ranking logic. Tables are keyed by the enum *values* so they can be loaded
from or dumped to JSON unchanged.
"""

# Memory units (decimal, as printed on accelerator spec sheets)
GB = 1000 ** 3

TERA = 10 ** 12

# Storage width of one element for each precision. Bits rather than bytes so
# that int4 stays integral; byte counts are rounded up once per memory
# component (weights, activations, ...) rather than per tensor.
BITS_PER_ELEMENT = {
    "fp32": 32,
    "fp16": 16,
    "int8": 8,
    "int4": 4,
}

# Integer formats are storage formats: activations and gradients of an
# int8/int4 configuration are held at this precision.
INTEGER_COMPUTE_PRECISION = "fp16"

# Activation memory coefficients, in elements saved per
# (token x hidden unit x layer) for attention families.
#
# Training values follow Korthikanti et al., "Reducing Activation
# Recomputation in Large Transformer Models" (2022): 34 bytes per
# (token x hidden x layer) in half precision without recomputation, i.e. 17
# elements, dropping the 5*a*s/h attention-score term (flash attention keeps
# the footprint linear in sequence length). MoE adds router logits and the
# dispatch/combine buffers of the routed tokens. Inference keeps roughly one
# hidden-sized working buffer per layer resident.
#
# Families without attention dimensions use the parameter-scaled form
# (elements per parameter per sample); one activation element per parameter
# per sample is the usual rule of thumb for CNN training at ImageNet scale.
ACTIVATION_COEFFICIENTS = {
    "dense-transformer": {"training": 17.0, "inference": 1.0},
    "mixture-of-experts": {"training": 19.0, "inference": 1.5},
    "convolutional": {"training": 1.0, "inference": 0.1},
    "other": {"training": 1.0, "inference": 0.1},
}

# Optimizer state in fp32 elements per parameter, whatever the weight
# precision: one momentum buffer, or the two Adam moments.
OPTIMIZER_STATE_MULTIPLIERS = {
    "sgd": 0.0,
    "momentum": 1.0,
    "adam": 2.0,
}

OPTIMIZER_STATE_BITS = 32

# FLOPs approximation: 2 operations (multiply + add) per active parameter per
# token for the forward pass; training doubles it for the backward pass.
FORWARD_OPS_PER_PARAMETER = 2
TRAINING_COMPUTE_MULTIPLIER = 2

# Key and value tensors
KV_TENSORS = 2

# Tensor parallelism all-reduces the layer output twice per layer (after
# attention and after the MLP) in the forward pass.
TENSOR_PARALLEL_ALLREDUCES_PER_LAYER = 2
