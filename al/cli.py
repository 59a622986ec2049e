#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
cli.py
Command line entry point (`al`).

Subcommands:
- link add|remove|edit|list|show|check|repair|unassociate
- shell set|edit|unset|enable|disable|show
- activate <zsh|bash>     prints `source` lines for eval "$(al activate zsh)"
- config show|init
- provider list

Packages are referenced as ID plus --provider (default from config); the
command resolves them to (id, provider) and calls exactly one store.
"""

from __future__ import annotations
import argparse
import os
import sys
from typing import Iterable, Mapping, Optional, Tuple

from rich.console import Console
from rich.table import Table

from . import __version__
from .config import Config, Env
from .errors import ALError, ConflictError, NotFoundError, ValidationError
from .links import LinkStore, LinkType, get_link_content_path
from .log import init_logging, set_level
from .providers import available_providers, get_provider, validate_provider_name
from .shell import ShellStore, package_dir_name, render_activation, shell_ext, shell_ext_from_env
from .utils import CommandError, log_error, log_success, log_warn, safe_run


def _build_cli_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="al", description="Manage linked dotfiles and shell snippets")
    p.add_argument("--config", "-c", help="config file path (yaml)", default=None)
    p.add_argument("--verbose", "-v", action="store_true", help="debug logging")
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    sub = p.add_subparsers(dest="cmd", required=True)

    # ---- link ----
    p_link = sub.add_parser("link", help="Manage link.d entries")
    link_sub = p_link.add_subparsers(dest="link_cmd", required=True)

    p_add = link_sub.add_parser("add", help="Move a path into link.d and leave a symlink")
    p_add.add_argument("name", help="Link name (letters, digits, _ - .)")
    p_add.add_argument("path", help="Path to take over (trailing / means directory if missing)")
    p_add.add_argument("--type", choices=[t.value for t in LinkType], default=None)
    p_add.add_argument("--package", help="Associate with package ID", default="")
    p_add.add_argument("--provider", help="Provider of --package", default=None)

    def _entry_args(sp: argparse.ArgumentParser) -> argparse.ArgumentParser:
        sp.add_argument("name", nargs="?", default=None, help="Link name")
        sp.add_argument("--path", default=None, help="Find the link by its symlink location instead")
        sp.add_argument("--package", default="", help="Narrow --path lookup to a package ID")
        sp.add_argument("--provider", default=None, help="Provider of --package (default from config)")
        return sp

    p_rm = _entry_args(link_sub.add_parser("remove", help="Remove a link and restore the original"))
    p_rm.add_argument("--purge", action="store_true", help="Delete content instead of restoring it")
    _entry_args(link_sub.add_parser("edit", help="Open the link content in $EDITOR"))

    p_list = link_sub.add_parser("list", help="List links")
    p_list.add_argument("--package", default="", help="Only links of this package ID")
    p_list.add_argument("--provider", default=None, help="Provider of --package (default from config)")

    _entry_args(link_sub.add_parser("show", help="Show a link"))
    link_sub.add_parser("check", help="Report broken links")
    link_sub.add_parser("repair", help="Recreate a missing symlink").add_argument("name")
    link_sub.add_parser("unassociate", help="Clear a link's package association").add_argument("name")

    # ---- shell ----
    p_shell = sub.add_parser("shell", help="Manage shell.d snippets")
    shell_sub = p_shell.add_subparsers(dest="shell_cmd", required=True)

    def _pkg_args(sp: argparse.ArgumentParser) -> argparse.ArgumentParser:
        sp.add_argument("package", help="Package ID")
        sp.add_argument("--provider", default=None, help="Package provider (default from config)")
        sp.add_argument("--shell", choices=["zsh", "bash"], default=None, help="Default from $SHELL")
        return sp

    p_set = _pkg_args(shell_sub.add_parser("set", help="Set snippet content and load order"))
    p_set.add_argument("command", help="Shell code for the snippet")
    p_set.add_argument("--after", default=None, help="Package ID this snippet loads after")
    p_set.add_argument("--after-provider", default=None, help="Provider of --after (default: same)")

    _pkg_args(shell_sub.add_parser("edit", help="Open the snippet in $EDITOR"))
    _pkg_args(shell_sub.add_parser("unset", help="Remove the package's shell.d entry"))
    _pkg_args(shell_sub.add_parser("enable", help="Enable snippet for al activate"))
    _pkg_args(shell_sub.add_parser("disable", help="Disable snippet for al activate"))
    _pkg_args(shell_sub.add_parser("show", help="Show manifest and snippets"))

    # ---- activate ----
    p_act = sub.add_parser("activate", help="Print shell code sourcing enabled snippets")
    p_act.add_argument("shell", help="zsh or bash")

    # ---- config / provider ----
    p_cfg = sub.add_parser("config", help="Configuration")
    cfg_sub = p_cfg.add_subparsers(dest="config_cmd", required=True)
    cfg_sub.add_parser("show", help="Print merged config")
    p_init = cfg_sub.add_parser("init", help="Write the merged config to <root>/config.yaml")
    p_init.add_argument("--force", action="store_true", help="Overwrite an existing file")
    p_prov = sub.add_parser("provider", help="Package providers")
    p_prov.add_subparsers(dest="provider_cmd", required=True).add_parser("list", help="List providers")

    return p


# ---------------- handlers ----------------

def _package_filter(args, cfg: Config) -> Tuple[str, str]:
    """(id, provider) for --package/--provider; provider falls back to config."""
    if not args.package:
        return "", ""
    return args.package, validate_provider_name(args.provider or cfg.default_provider)


def _find_entry(store: LinkStore, args, cfg: Config):
    if args.path:
        package_id, provider = _package_filter(args, cfg)
        entry, entry_dir = store.find_link_by_user_path(args.path, package_id, provider)
        if entry is None:
            raise NotFoundError(f"link not found for path {args.path}")
        return entry, entry_dir
    if not args.name:
        raise ValidationError("give a link NAME or --path")
    entry, entry_dir = store.get_link_by_name(args.name)
    if entry is None:
        raise NotFoundError(f"no link named {args.name}")
    return entry, entry_dir


def _cmd_link(args, env: Env, cfg: Config, console: Console, environ: Mapping[str, str]) -> int:
    store = LinkStore(env)

    if args.link_cmd == "add":
        package_id, provider = _package_filter(args, cfg)
        entry = store.add_link(args.name, args.path, args.type, package_id, provider)
        console.print(f"Added link [bold]{entry.name}[/bold]: {entry.manifest.user_path}")
        return 0

    if args.link_cmd == "list":
        entries = store.list_links(*_package_filter(args, cfg))
        if not entries:
            console.print("No links")
            return 0
        table = Table("Name", "Type", "Path", "Package")
        for e in entries:
            pkg = f"{e.manifest.package_id} ({e.manifest.package_provider})" if e.manifest.package_id else ""
            table.add_row(e.name, e.manifest.type.value, e.manifest.user_path, pkg)
        console.print(table)
        return 0

    if args.link_cmd == "check":
        problems = store.check_links()
        for prob in problems:
            log_warn(str(prob))
        if not problems:
            log_success("All links OK")
        return 1 if problems else 0

    if args.link_cmd == "repair":
        if not store.repair_link(args.name):
            console.print(f"Link {args.name} is already in place")
        return 0

    if args.link_cmd == "unassociate":
        entry, entry_dir = store.get_link_by_name(args.name)
        if entry is None:
            raise NotFoundError(f"no link named {args.name}")
        store.clear_link_package_association(entry_dir)
        console.print(f"Cleared package association of {entry.name}")
        return 0

    entry, entry_dir = _find_entry(store, args, cfg)

    if args.link_cmd == "remove":
        store.remove_link(entry, entry_dir, purge=args.purge)
        verb = "Purged" if args.purge else "Removed"
        console.print(f"{verb} link {entry.name} ({entry.manifest.user_path})")
    elif args.link_cmd == "edit":
        editor = environ.get("EDITOR") or "vim"
        safe_run([editor, str(get_link_content_path(entry_dir))])
    elif args.link_cmd == "show":
        m = entry.manifest
        console.print(f"Name: {entry.name}")
        console.print(f"Path: {m.user_path}")
        console.print(f"Type: {m.type.value}")
        console.print(f"Content: {get_link_content_path(entry_dir)}")
        if m.package_id:
            console.print(f"Package: {m.package_id} (provider: {m.package_provider})")
    return 0


def _cmd_shell(args, env: Env, cfg: Config, console: Console, environ: Mapping[str, str]) -> int:
    store = ShellStore(env)
    provider = validate_provider_name(args.provider or cfg.default_provider)
    ext = shell_ext(args.shell) if args.shell else shell_ext_from_env(environ)

    if args.shell_cmd == "set":
        after = None
        if args.after:
            after_provider = validate_provider_name(args.after_provider or provider)
            after = package_dir_name(args.after, after_provider)
        store.set_snippet(args.package, provider, args.command, ext, after=after)
        console.print(f"Set shell snippet for {args.package} (provider: {provider})")
    elif args.shell_cmd == "edit":
        snippet = store.ensure_snippet_file(args.package, provider, ext)
        editor = environ.get("EDITOR") or "vim"
        safe_run([editor, str(snippet)])
    elif args.shell_cmd == "unset":
        store.remove_package_dir(args.package, provider)
        console.print(f"Unset shell snippet for {args.package} (provider: {provider})")
    elif args.shell_cmd in ("enable", "disable"):
        store.set_enabled(args.package, provider, args.shell_cmd == "enable")
    elif args.shell_cmd == "show":
        found = store.describe(args.package, provider, ext)
        if found is None:
            console.print(f"No shell.d entry for package {args.package} (provider: {provider})")
            return 0
        pkg_dir, manifest, paths = found
        console.print(f"Package: {args.package} (provider: {provider})")
        console.print(f"Path: {pkg_dir}")
        console.print(f"Enabled: {manifest.enabled}")
        if manifest.after:
            console.print(f"After: {manifest.after}")
        if not paths:
            console.print("(no snippet files)")
        for p in paths:
            console.print(f"--- {p.name}", markup=False)
            console.print(p.read_text(encoding="utf-8", errors="replace"), markup=False, highlight=False)
    return 0


def cli_main(argv: Optional[Iterable[str]] = None, environ: Optional[Mapping[str, str]] = None) -> int:
    parser = _build_cli_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    environ = os.environ if environ is None else environ

    try:
        env = Env.from_environ(environ)
        cfg = Config.load(env, args.config, environ)
        init_logging(cfg.logging)
        if args.verbose:
            set_level("DEBUG")
        console = Console(highlight=False)

        if args.cmd == "link":
            return _cmd_link(args, env, cfg, console, environ)
        if args.cmd == "shell":
            return _cmd_shell(args, env, cfg, console, environ)
        if args.cmd == "activate":
            entries = ShellStore(env).enabled_entries_in_order(shell_ext(args.shell))
            sys.stdout.write(render_activation(entries))
            return 0
        if args.cmd == "config":
            if args.config_cmd == "init":
                target = env.root / "config.yaml"
                if target.exists() and not args.force:
                    raise ConflictError(f"{target} already exists (use --force to overwrite)")
                cfg.save(target)
                log_success(f"Wrote {target}")
                return 0
            sys.stdout.write(cfg.pretty() + "\n")
            return 0
        if args.cmd == "provider":
            for name in available_providers():
                state = "installed" if get_provider(name).check_installed() else "not installed"
                console.print(f"{name}\t{state}")
            return 0

    except KeyboardInterrupt:
        print("Interrupted", file=sys.stderr)
        return 130
    except (ALError, CommandError) as e:
        log_error(str(e))
        return 1

    return 0


def main() -> None:
    sys.exit(cli_main())


if __name__ == "__main__":
    main()
