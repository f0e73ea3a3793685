#!/usr/bin/env python3
# %% [markdown]
# # statepipe — Interactive Demo
#
# Walks through the pipeline builder, recovery policies and chaining.
# Each cell is self-contained — run them top to bottom.
#
# **No external services** — only the `statepipe/` package.

# %% [markdown]
# ## Setup & Imports

# %%
import asyncio
import logging
import sys
from pathlib import Path

# Walk up from the script/notebook directory until we find the project root
# (identified by containing a `statepipe/` package directory).
_here = Path(__file__).resolve().parent if "__file__" in dir() else Path.cwd()
_root = _here
for _p in [_here] + list(_here.parents):
    if (_p / "statepipe" / "__init__.py").exists():
        _root = _p
        break
sys.path.insert(0, str(_root))

from statepipe import Pipeline, PipelineError, RecoveryPolicy

logging.basicConfig(level=logging.INFO, format="    [%(name)s] %(message)s")


# %% [markdown]
# ## Operations
#
# An operation is any function (sync or async) taking ``(state, env)``.
# ``transform`` functions take ``(value, state, env)`` instead.

# %%
def tokenize(state, env):
    return state["text"].split()


def count(state, env):
    return len(state["tokens"])


async def shout(tokens, state, env):
    await asyncio.sleep(0)
    return [t.upper() for t in tokens]


def explode(state, env):
    raise RuntimeError(f"Boom on text={state['text']!r}!")


# %% [markdown]
# ---
# ## 1. Basic Linear Pipeline

# %%
pipe = (
    Pipeline()
    .augment("tokens", tokenize)
    .augment("word_count", count)
    .transform("tokens", shout)
    .log(lambda s, env: f"{s['word_count']} words → {s['tokens']}")
)
print(pipe)
print(pipe.run({"text": "hello pipeline world"}))

# %% [markdown]
# ---
# ## 2. Default Recovery — Swallow
#
# The first failure stops the run; the last good state is returned and the
# error is logged.

# %%
print(Pipeline().augment("tokens", tokenize).apply_to(explode).run({"text": "a b"}))

# %% [markdown]
# ---
# ## 3. Custom Recovery

# %%
out = (
    Pipeline()
    .augment("tokens", tokenize)
    .apply_to(explode)
    .on_error(lambda err, s, env: {**s, "error": err.to_json()})
    .run({"text": "a b"})
)
print(out["error"])

# %% [markdown]
# ---
# ## 4. Chaining — Bubble to the Parent

# %%
child = Pipeline.bubbling().augment("tokens", tokenize).augment("tokens", count)
parent = Pipeline().chain(child).on_error(RecoveryPolicy.BUBBLE)

try:
    parent.run({"text": "x y z"})
except PipelineError as e:
    print(f"  Caught PipelineError: op={e.op} id={e.id} → {e.message}")
