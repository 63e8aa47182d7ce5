import numpy as np


def numerical_gradient(fn, x, eps=1e-6):
    """Central-difference gradient of scalar fn at x."""
    x = np.array(x, dtype=np.float64)
    grad = np.zeros_like(x)
    flat_x = x.reshape(-1)
    flat_grad = grad.reshape(-1)

    for i in range(flat_x.size):
        orig = flat_x[i]
        flat_x[i] = orig + eps
        plus = fn(x)
        flat_x[i] = orig - eps
        minus = fn(x)
        flat_x[i] = orig
        flat_grad[i] = (plus - minus) / (2 * eps)

    return grad


def check_gradient(layer, x, top_weights=None, eps=1e-6, seed=1701):
    """
    Compare layer.backward against central differences of sum(top * weights).

    The layer's running statistics are restored afterwards, so checking a
    training-mode layer leaves it as it was.

    Returns:
        (analytic, numeric) gradients w.r.t. x
    """
    x = np.asarray(x, dtype=np.float64)
    if top_weights is None:
        top_weights = np.random.default_rng(seed).standard_normal(x.shape)

    saved = layer.state_dict()
    try:
        top, cache = layer.forward(x)
        analytic = layer.backward(top_weights, cache)

        def objective(inp):
            out, _ = layer.forward(inp)
            return float(np.sum(out * top_weights))

        numeric = numerical_gradient(objective, x, eps=eps)
    finally:
        layer.load_state_dict(saved)

    return analytic, numeric
