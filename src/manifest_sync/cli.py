"""manifest-sync CLI - command line interface for manifest-sync."""
import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click

from manifest_sync.core.config import SyncConfig
from manifest_sync.core.errors import (
    ConfigError,
    ManifestParseError,
    MirrorSyncError,
    RepositoryNotFoundError,
)
from manifest_sync.manifest.validator import ManifestValidator
from manifest_sync.mirror.handle import MirrorKind, RepositoryHandle
from manifest_sync.persistence import JsonRepositoryRegistry
from manifest_sync.pipeline import RefreshPipeline

logger = logging.getLogger("manifest_sync")

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_NOT_FOUND = 3
EXIT_PARSE_ERROR = 4
EXIT_SYNC_ERROR = 5
EXIT_CONFIG_ERROR = 7


def _load_config(config_path: Optional[Path], root_path: Optional[Path]) -> SyncConfig:
    config = SyncConfig.load(config_path) if config_path else SyncConfig()
    if root_path is not None:
        config = config.model_copy(update={"root_path": root_path})
    return config


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="JSON configuration file",
)
@click.option(
    "--registry",
    type=click.Path(dir_okay=False, path_type=Path),
    default=Path("data/repositories.json"),
    help="Repository registry file",
)
@click.option(
    "--root-path",
    type=click.Path(file_okay=False, path_type=Path),
    default=None,
    help="Root directory for local mirrors (overrides config)",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
@click.pass_context
def main(ctx: click.Context, config_path: Optional[Path], registry: Path, root_path: Optional[Path], verbose: bool):
    """manifest-sync - fetch, validate and cache executable manifests."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(name)s: %(message)s",
    )
    try:
        config = _load_config(config_path, root_path)
    except ConfigError as e:
        logger.error(str(e))
        sys.exit(EXIT_CONFIG_ERROR)

    ctx.obj = {
        "config": config,
        "registry": JsonRepositoryRegistry(registry),
    }


@main.command()
@click.option("--repo-id", required=True, help="Repository identifier")
@click.option("--address", required=True, help="Clone URL or local path")
@click.option("--sha", default=None, help="Pinned revision")
@click.pass_obj
def register(obj: dict, repo_id: str, address: str, sha: Optional[str]):
    """Register or replace a repository in the registry.

    Examples:
        manifest-sync register --repo-id hello --address https://github.com/org/hello.git
    """
    try:
        handle = RepositoryHandle(id=repo_id, address=address, sha=sha)
        obj["registry"].register(handle)
    except ValueError as e:
        logger.error(f"Invalid repository: {e}")
        sys.exit(EXIT_FAILURE)
    except ConfigError as e:
        logger.error(str(e))
        sys.exit(EXIT_CONFIG_ERROR)

    click.echo(f"[OK] Registered {handle.id}")
    sys.exit(EXIT_OK)


@main.command(name="list")
@click.pass_obj
def list_repositories(obj: dict):
    """List registered repositories."""
    try:
        handles = obj["registry"].list_repositories()
    except ConfigError as e:
        logger.error(str(e))
        sys.exit(EXIT_CONFIG_ERROR)

    for handle in handles:
        synced = handle.last_synced_at.isoformat() if handle.last_synced_at else "never"
        pinned = f" @ {handle.sha[:12]}" if handle.sha else ""
        click.echo(f"{handle.id}\t{handle.address}{pinned}\tlast synced: {synced}")
    sys.exit(EXIT_OK)


@main.command()
@click.option("--repo-id", required=True, help="Registered repository identifier")
@click.option(
    "--kind",
    type=click.Choice([kind.value for kind in MirrorKind]),
    default=MirrorKind.FULL.value,
    help="Mirror kind: full working copy or manifest file only",
)
@click.option("--json", "as_json", is_flag=True, help="Print the validated manifest as JSON")
@click.pass_obj
def fetch(obj: dict, repo_id: str, kind: str, as_json: bool):
    """Refresh a repository mirror and print its validated manifest.

    Exit codes:
        0: Success
        1: Generic runtime failure
        3: Repository not registered
        4: Manifest is not valid JSON
        5: Mirror sync failed
        7: Configuration error
    """
    pipeline = RefreshPipeline.from_config(obj["config"], repositories=obj["registry"])

    try:
        manifest = pipeline.get_manifest_by_id(repo_id, MirrorKind(kind))
    except RepositoryNotFoundError as e:
        logger.error(str(e))
        sys.exit(EXIT_NOT_FOUND)
    except ManifestParseError as e:
        logger.error(f"Invalid manifest: {e}")
        sys.exit(EXIT_PARSE_ERROR)
    except MirrorSyncError as e:
        logger.error(f"Sync failed: {e}")
        sys.exit(EXIT_SYNC_ERROR)
    except ConfigError as e:
        logger.error(str(e))
        sys.exit(EXIT_CONFIG_ERROR)
    except Exception as e:
        logger.error(f"Fetch failed: {e}")
        sys.exit(EXIT_FAILURE)

    if as_json:
        click.echo(json.dumps(manifest.to_dict(), indent=2))
    else:
        click.echo(f"[OK] Manifest fetched: {repo_id}")
        click.echo(f"  Name: {manifest.name}")
        click.echo(f"  Container: {manifest.container}")
        click.echo(f"  HPC: {manifest.default_hpc} (supported: {', '.join(manifest.supported_hpc)})")
        click.echo(f"  Slurm rules: {', '.join(manifest.slurm_input_rules) or 'none'}")
        click.echo(f"  Param rules: {', '.join(manifest.param_rules) or 'none'}")
    sys.exit(EXIT_OK)


@main.command()
@click.argument("manifest_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--address", default="", help="Repository address recorded when the manifest has none")
@click.pass_obj
def validate(obj: dict, manifest_file: Path, address: str):
    """Normalize a local manifest.json and print the result as JSON."""
    validator = ManifestValidator(default_hpc=obj["config"].default_hpc)
    try:
        manifest = validator.normalize(manifest_file.read_text(encoding="utf-8"), address)
    except ManifestParseError as e:
        logger.error(f"Invalid manifest: {e}")
        sys.exit(EXIT_PARSE_ERROR)

    click.echo(json.dumps(manifest.to_dict(), indent=2))
    sys.exit(EXIT_OK)


if __name__ == "__main__":
    main()
