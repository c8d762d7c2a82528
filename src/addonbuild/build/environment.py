"""Scoped environment overrides for builder subprocesses.

Compiler selection (CC/CXX) is passed to the builder through its process
environment. Overrides are applied to a private copy handed to the child
process, never to ``os.environ``, so concurrent module builds cannot see
each other's settings.
"""

import os
from contextlib import contextmanager
from typing import Dict, Iterator, Mapping, Optional


def merged_environment(
    overrides: Optional[Mapping[str, str]] = None,
    base: Optional[Mapping[str, str]] = None,
) -> Dict[str, str]:
    """Return a copy of ``base`` (default: os.environ) with overrides applied."""
    env = dict(os.environ if base is None else base)
    if overrides:
        env.update(overrides)
    return env


@contextmanager
def scoped_environment(
    overrides: Optional[Mapping[str, str]] = None,
) -> Iterator[Dict[str, str]]:
    """Yield an environment mapping valid for the duration of one build.

    The yielded dict is discarded on exit whether or not the build raised,
    leaving the process environment exactly as it was.

    Example:
        with scoped_environment({"CC": "clang"}) as env:
            subprocess.run(cmd, env=env)
    """
    env = merged_environment(overrides)
    try:
        yield env
    finally:
        env.clear()
