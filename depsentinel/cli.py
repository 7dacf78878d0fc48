"""CLI entry point: depsentinel.

Subcommands:
    depsentinel update-go-mod --repo-path . -d github.com/foo/bar@v1.2.0
    depsentinel update-go-mod --repo-url https://github.com/org/repo --ref main -d ...
    depsentinel resolve-digest ubuntu sha256:abc... [--registry REGISTRY]
    depsentinel docker-deps path/to/Dockerfile [ci/pipeline-template.yml ...]
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click

from depsentinel.core.config import Settings, credentials_from_env
from depsentinel.core.dependency import Dependency, Requirement
from depsentinel.core.errors import DepSentinelError
from depsentinel.core.logging import setup_logging


def _parse_dependency(value: str, *, indirect: bool) -> Dependency:
    """``path@version`` -> Dependency (direct ones carry a go.mod requirement)."""
    name, sep, version = value.rpartition("@")
    if not sep or not name or not version:
        raise click.BadParameter(f"expected MODULE@VERSION, got {value!r}")
    requirements = [] if indirect else [Requirement(file="go.mod", requirement=version)]
    return Dependency(name=name, version=version, requirements=requirements)


@click.group()
@click.option("-v", "--verbose", is_flag=True, help="Verbose logging")
def main(verbose: bool) -> None:
    """depsentinel: dependency manifest update engines."""
    setup_logging("DEBUG" if verbose else None)


@main.command("update-go-mod")
@click.option(
    "--repo-path",
    type=click.Path(exists=True, file_okay=False, path_type=Path),
    default=None,
    help="Existing checkout to update in place",
)
@click.option("--repo-url", default=None, help="Git URL to clone instead of --repo-path")
@click.option("--ref", default=None, help="Branch, tag or SHA to check out (with --repo-url)")
@click.option("--directory", default="/", show_default=True, help="go.mod directory in the repo")
@click.option("-d", "--dependency", "direct", multiple=True, help="MODULE@VERSION (direct)")
@click.option("-i", "--indirect", "indirect", multiple=True, help="MODULE@VERSION (indirect)")
@click.option("--write", is_flag=True, help="Write go.mod/go.sum back (with --repo-path)")
def update_go_mod(
    repo_path: Path | None,
    repo_url: str | None,
    ref: str | None,
    directory: str,
    direct: tuple[str, ...],
    indirect: tuple[str, ...],
    write: bool,
) -> None:
    """Apply dependency versions to a go.mod/go.sum pair."""
    from depsentinel.engines.go_mod_updater import GoModUpdater, RepoLocation

    if (repo_path is None) == (repo_url is None):
        click.echo("Error: pass exactly one of --repo-path or --repo-url", err=True)
        sys.exit(1)
    if write and repo_path is None:
        click.echo("Error: --write needs --repo-path", err=True)
        sys.exit(1)

    dependencies = [_parse_dependency(s, indirect=False) for s in direct]
    dependencies += [_parse_dependency(s, indirect=True) for s in indirect]
    if not dependencies:
        click.echo("Error: no dependencies given (-d/--dependency or -i/--indirect)", err=True)
        sys.exit(1)

    location = RepoLocation(
        repo_contents_path=repo_path, repo_url=repo_url, ref=ref, directory=directory
    )
    updater = GoModUpdater(
        dependencies, credentials_from_env(), location, settings=Settings.from_env()
    )
    try:
        files = updater.updated_files
    except DepSentinelError as e:
        click.echo(f"Error ({type(e).__name__}): {e}", err=True)
        sys.exit(1)

    if write:
        target = repo_path / directory.strip("/")  # type: ignore[operator]
        (target / "go.mod").write_text(files.go_mod, encoding="utf-8")
        if files.go_sum is not None:
            (target / "go.sum").write_text(files.go_sum, encoding="utf-8")
        click.echo(f"Updated {target / 'go.mod'}")
        return

    click.echo(json.dumps({"go_mod": files.go_mod, "go_sum": files.go_sum}, indent=2))


@main.command("resolve-digest")
@click.argument("image")
@click.argument("digest")
@click.option("--registry", default=None, help="Registry host (default: Docker Hub)")
def resolve_digest(image: str, digest: str, registry: str | None) -> None:
    """Print the tag of IMAGE whose manifest digest is DIGEST."""
    from depsentinel.engines.docker_registry import version_from_digest

    try:
        tag = asyncio.run(version_from_digest(registry, image, digest, credentials_from_env()))
    except DepSentinelError as e:
        click.echo(f"Error ({type(e).__name__}): {e}", err=True)
        sys.exit(1)
    if tag is None:
        click.echo(f"No tag of {image} matches {digest}", err=True)
        sys.exit(1)
    click.echo(tag)


@main.command("docker-deps")
@click.argument(
    "paths", nargs=-1, required=True, type=click.Path(exists=True, dir_okay=False, path_type=Path)
)
def docker_deps(paths: tuple[Path, ...]) -> None:
    """List the base images of Dockerfiles or pipeline templates, as JSON.

    Files are told apart by name. If any pipeline template is given, the
    Dockerfiles are ignored.
    """
    from depsentinel.engines.docker_registry import DockerfileParser

    parser = DockerfileParser(credentials_from_env())
    files = [(p.name, p.read_text(encoding="utf-8", errors="replace")) for p in paths]
    try:
        deps = asyncio.run(parser.parse_files(files))
    except DepSentinelError as e:
        click.echo(f"Error ({type(e).__name__}): {e}", err=True)
        sys.exit(1)

    rows = [
        {
            "name": d.name,
            "version": d.version,
            "sources": [
                {
                    "file": r.file,
                    "registry": r.source.registry if r.source else None,
                    "tag": r.source.tag if r.source else None,
                    "digest": r.source.digest if r.source else None,
                }
                for r in d.requirements
            ],
        }
        for d in deps
    ]
    click.echo(json.dumps(rows, indent=2))


if __name__ == "__main__":
    main()
