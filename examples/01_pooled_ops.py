import numpy as np

from opspool import ExecutionContext

# Score a batch of candidates, keep the best two per row, and release every
# intermediate in one flush.

rng = np.random.default_rng(0)
logits = rng.normal(size=(4, 6)).astype(np.float32)
mask = (rng.random(size=(4, 6)) > 0.25).astype(np.int32)

with ExecutionContext("numpy") as ctx:
    scores = ctx.tensor(logits)
    keep = ctx.tensor(mask)
    masked = ctx.where(keep, scores, ctx.scalar(-1e4))
    probs = ctx.softmax(masked, axis=-1)
    values, indices = ctx.top_k(probs, 2, axis=-1)
    totals = ctx.reduce_sum(values, [-1], keepdims=False)
    # empty batches flow through without reaching the backend
    padded = ctx.concat([probs, ctx.zeros((0, 6))], 0)

    best = ctx.take(indices)
    mass = ctx.take(totals)
    released = ctx.flush()

print("pooled temporaries released:", released)
print("padded batch shape:", padded.shape)
print("top-2 indices:", best.tolist())
print("top-2 probability mass:", np.round(mass.numpy(), 3).tolist())
