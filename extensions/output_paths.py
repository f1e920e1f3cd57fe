from __future__ import annotations
from pathlib import Path

# Artifact kind -> (subfolder, filename suffix) under the output root
ARTIFACT_LAYOUT: dict[str, tuple[str, str]] = {
    "html": ("html", "_site_data.html"),
    "screenshot": ("screenshots", "_screenshot"),
    "urls": ("url", "_urls.txt"),
}

# Single-target variant writes fixed names at the output root
SINGLE_TARGET_FILES: dict[str, str] = {
    "html": "site_data.html",
    "screenshot": "screenshot",
}

def screenshot_ext(screenshot_type: str) -> str:
    return ".jpg" if screenshot_type == "jpeg" else ".png"

def ensure_output_dirs(root: Path) -> dict[str, Path]:
    """
    Ensure html/, screenshots/ and url/ exist under *root*.
    Returns a mapping from artifact kind to its folder.
    """
    dirs = {kind: root / sub for kind, (sub, _) in ARTIFACT_LAYOUT.items()}
    for d in dirs.values():
        d.mkdir(parents=True, exist_ok=True)
    return dirs

def artifact_path(root: Path, kind: str, host_key: str, *, screenshot_type: str = "png") -> Path:
    """
    Location of one artifact for one target, e.g. html/a.test_site_data.html.
    """
    try:
        sub, suffix = ARTIFACT_LAYOUT[kind]
    except KeyError:
        raise ValueError(f"Invalid artifact kind '{kind}' (expected html|screenshot|urls)") from None
    if kind == "screenshot":
        suffix += screenshot_ext(screenshot_type)
    return root / sub / f"{host_key}{suffix}"

def single_target_path(root: Path, kind: str, *, screenshot_type: str = "png") -> Path:
    name = SINGLE_TARGET_FILES[kind]
    if kind == "screenshot":
        name += screenshot_ext(screenshot_type)
    return root / name
