"""Required-artifact policy.

A directive that names one of the known artifact files must get that file
back. Matching is case-insensitive on both sides.
"""
from typing import Iterable, List

REQUIRED_ARTIFACT_TOKENS = (
    "package.json",
    "server.js",
    "index.html",
    "tailwind.css",
    "vite.config.js",
)


def find_missing_artifacts(directive: str, file_names: Iterable[str]) -> List[str]:
    """Artifacts named in `directive` that are absent from `file_names`, in token order."""
    if not directive:
        return []
    lowered = directive.lower()
    present = {name.lower() for name in file_names}
    return [
        token for token in REQUIRED_ARTIFACT_TOKENS
        if token in lowered and token not in present
    ]
