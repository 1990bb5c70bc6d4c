"""
Per-tool dotfiles: the gau configuration and gf patterns/completion.
"""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Sequence

from .common import has_command
from .environment import EnvironmentContext
from .installer import capture_output
from .ledger import InstallLedger
from .profile import Profile, SourceCompletion

logger = logging.getLogger(__name__)

GAU_CONFIG_NAME = ".gau.toml"
GAU_CONFIG = """\
threads = 2
verbose = false
retries = 15
subdomains = false
parameters = false
providers = ["wayback","commoncrawl","otx","urlscan"]
blacklist = ["ttf","woff","svg","png","jpg"]
json = false

[urlscan]
apikey = ""

[filters]
from = ""
to = ""
matchstatuscodes = []
matchmimetypes = []
filterstatuscodes = []
filtermimetypes = ["image/png", "image/jpg", "image/svg+xml"]
"""

GF_MODULE_PARENT = Path("pkg") / "mod" / "github.com" / "tomnomnom"
GF_PATTERNS_DIR = ".gf"
GF_EXTRA_PATTERNS_DIR = "GFpattren"

# Dotfiles removed by manifest-driven uninstall, relative to the home directory
LEGACY_DOTFILES = (GF_PATTERNS_DIR, GAU_CONFIG_NAME, ".zenmap")


def create_gau_config(ctx: EnvironmentContext, ledger: InstallLedger | None = None) -> bool:
    """
    Write the default gau configuration unless one exists.

    Returns:
        True if the file was created
    """
    path = ctx.install_home / GAU_CONFIG_NAME
    if path.exists():
        logger.info(f"{path} already exists, skipping.")
        return False

    path.write_text(GAU_CONFIG, encoding="utf-8")
    logger.info(f"Created {path}")
    if ledger is not None:
        ledger.record_file(str(path))
    return True


def resolve_gopath(ctx: EnvironmentContext) -> Path:
    """GOPATH as reported by `go env GOPATH`, or <home>/go."""
    if has_command("go"):
        output = capture_output(("go", "env", "GOPATH"), ctx)
        if output and output.strip():
            # GOPATH may list several entries; modules live in the first
            return Path(output.strip().split(":")[0])
    return ctx.home_dir / "go"


def find_gf_module(gopath: Path) -> Path | None:
    """Newest gf module directory in the module cache, if any."""
    candidates = sorted(p for p in (gopath / GF_MODULE_PARENT).glob("gf@*") if p.is_dir())
    return candidates[-1] if candidates else None


def setup_gf(
    ctx: EnvironmentContext,
    profile: Profile,
    ledger: InstallLedger | None = None,
) -> bool:
    """
    Wire up gf: shell completion, bundled example patterns, extra patterns.

    A missing module directory or completion file is logged and skipped.

    Returns:
        False if the gf module could not be found
    """
    module_dir = find_gf_module(resolve_gopath(ctx))
    if module_dir is None:
        logger.error("gf module directory not found, skipping gf setup.")
        return False

    completion = module_dir / f"gf-completion.{ctx.shell_kind}"
    if completion.is_file():
        source = SourceCompletion(str(completion))
        if profile.add_source(source) and ledger is not None:
            ledger.record_profile_directive(source.render())
    else:
        logger.error(f"gf completion file not found: {completion}")

    patterns_dir = ctx.home_dir / GF_PATTERNS_DIR
    if not patterns_dir.exists():
        patterns_dir.mkdir(parents=True)
        if ledger is not None:
            ledger.record_directory(str(patterns_dir))

    examples = module_dir / "examples"
    if examples.is_dir():
        # Plain copies: module cache files are read-only
        for pattern in sorted(examples.iterdir()):
            if pattern.is_file():
                shutil.copyfile(pattern, patterns_dir / pattern.name)

    extra = ctx.home_dir / GF_EXTRA_PATTERNS_DIR
    if extra.is_dir():
        for pattern in sorted(extra.glob("*.json")):
            shutil.move(str(pattern), str(patterns_dir / pattern.name))

    logger.info(f"gf patterns installed in {patterns_dir}")
    return True


def remove_files(paths: Sequence[str | Path]) -> list[str]:
    """
    Delete files, or directories, that exist.

    Returns:
        Paths that were deleted
    """
    removed = []
    for path in map(Path, paths):
        if path.is_dir() and not path.is_symlink():
            shutil.rmtree(path, ignore_errors=True)
        elif path.exists() or path.is_symlink():
            path.unlink()
        else:
            continue
        logger.info(f"Removed {path}")
        removed.append(str(path))
    return removed


def legacy_dotfiles(ctx: EnvironmentContext) -> list[Path]:
    """Dotfiles the manifest-driven uninstall deletes."""
    paths = [ctx.home_dir / name for name in LEGACY_DOTFILES]
    gau = ctx.install_home / GAU_CONFIG_NAME
    if gau not in paths:
        paths.append(gau)
    return paths
