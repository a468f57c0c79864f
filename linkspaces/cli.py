from __future__ import annotations

import argparse
import sys
import webbrowser
from pathlib import Path
from typing import Any, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm
from rich.tree import Tree

from . import __version__
from .config import load_settings
from .log import LogConfig, get_logger, setup_logging
from .notify import ToastNotifier
from .open_all import OpenSequence, Opener
from .spaces import MutationResult, SpacesStore
from .url_norm import domain_of

log = get_logger(__name__)


def main(argv: List[str] | None = None) -> int:
    p = argparse.ArgumentParser(
        prog="linkspaces",
        description="Keep named spaces of links and open a whole space at once.",
    )
    p.add_argument("-V", "--version", action="version", version=f"linkspaces {__version__}")
    p.add_argument("--config", default=None, help="YAML config file (optional). Env vars override defaults.")
    p.add_argument("--db", default=None, help="SQLite file holding the spaces (overrides SPACES_DB_PATH).")
    p.add_argument("--log-level", default=None, help="DEBUG/INFO/WARN/ERROR (overrides env/config).")
    p.add_argument("--no-color", action="store_true", help="Disable colored logging.")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("show", help="List spaces and the links of the active space.")

    exp = sub.add_parser("export", help="Print (or write) the JSON export.")
    exp.add_argument("--out", default=None, help="Write to this file instead of stdout.")

    imp = sub.add_parser("import", help="Replace all data with a JSON export.")
    imp.add_argument("file", help="Export file, or - for stdin.")

    space = sub.add_parser("space", help="Create, rename, delete, select or move spaces.")
    space_sub = space.add_subparsers(dest="action", required=True)
    s_add = space_sub.add_parser("add")
    s_add.add_argument("name")
    s_add.add_argument("--emoji", default="📁")
    s_ren = space_sub.add_parser("rename")
    s_ren.add_argument("id")
    s_ren.add_argument("name")
    s_ren.add_argument("--emoji", default=None)
    s_del = space_sub.add_parser("delete")
    s_del.add_argument("id")
    s_use = space_sub.add_parser("use")
    s_use.add_argument("id")
    s_mv = space_sub.add_parser("move", help="Move space FROM to the position of space TO.")
    s_mv.add_argument("from_id")
    s_mv.add_argument("to_id")

    link = sub.add_parser("link", help="Add, edit, delete or move links (active space unless --space).")
    link_sub = link.add_subparsers(dest="action", required=True)
    l_add = link_sub.add_parser("add")
    l_add.add_argument("title")
    l_add.add_argument("url")
    l_edit = link_sub.add_parser("edit")
    l_edit.add_argument("id")
    l_edit.add_argument("title")
    l_edit.add_argument("url")
    l_del = link_sub.add_parser("delete")
    l_del.add_argument("id")
    l_mv = link_sub.add_parser("move", help="Move link FROM to the position of link TO.")
    l_mv.add_argument("from_id")
    l_mv.add_argument("to_id")
    for lp in (l_add, l_edit, l_del, l_mv):
        lp.add_argument("--space", default=None, help="Space id (default: active space).")

    st = sub.add_parser("settings", help="Show or change open-all settings.")
    st.add_argument("--mode", choices=["tabs", "window"], default=None)
    st.add_argument("--confirm", choices=["on", "off"], default=None)
    st.add_argument("--max", type=int, default=None, help="Safety cap for open-all (1-100).")
    st.add_argument("--delay", type=int, default=None, help="Delay between opens in ms (0-2000).")

    se = sub.add_parser("search", help="Search links of a space by title, URL or domain.")
    se.add_argument("query")
    se.add_argument("--space", default=None)

    op = sub.add_parser("open", help="Open every link of a space in the browser.")
    op.add_argument("--space", default=None)
    op.add_argument("--yes", action="store_true", help="Skip the confirmation prompt.")
    op.add_argument("--dry-run", action="store_true", help="Print the URLs instead of opening them.")

    args = p.parse_args(argv)
    cfg = load_settings(args.config)
    if args.db:
        cfg.db_path = args.db
    if args.log_level:
        cfg.log_level = args.log_level
    if args.no_color:
        cfg.no_color = True
    setup_logging(LogConfig(level=cfg.log_level, no_color=cfg.no_color))

    console = Console(no_color=cfg.no_color)
    notifier = ToastNotifier(cfg.notice_clear_s)
    store = SpacesStore.from_settings(cfg, notifier=notifier)
    try:
        return _dispatch(args, store, console)
    finally:
        if notifier.current:
            console.print(f"[bold]{escape(notifier.current)}[/bold]", highlight=False)


def _dispatch(args, store: SpacesStore, console: Console) -> int:
    if args.cmd == "show":
        _print_spaces(store, console)
        return 0
    if args.cmd == "export":
        return _cmd_export(args, store, console)
    if args.cmd == "import":
        return _cmd_import(args, store)
    if args.cmd == "space":
        return _cmd_space(args, store, console)
    if args.cmd == "link":
        return _cmd_link(args, store, console)
    if args.cmd == "settings":
        return _cmd_settings(args, store, console)
    if args.cmd == "search":
        for link in store.search_links(args.query, args.space):
            console.print(f"{link.id}  {escape(link.title)}  [dim]{escape(link.url)}[/dim]", highlight=False)
        return 0
    if args.cmd == "open":
        return _cmd_open(args, store, console)
    return 2


def _cmd_export(args, store: SpacesStore, console: Console) -> int:
    text = store.export_snapshot()
    if not args.out:
        console.print(text, highlight=False, markup=False, soft_wrap=True)
        return 0
    try:
        Path(args.out).write_text(text + "\n", encoding="utf-8")
    except OSError as e:
        log.error("Failed to write export: %s", e)
        return 2
    log.info("Wrote export: %s", args.out)
    return 0


def _cmd_import(args, store: SpacesStore) -> int:
    try:
        text = sys.stdin.read() if args.file == "-" else Path(args.file).read_text(encoding="utf-8")
    except OSError as e:
        log.error("Failed to read import file: %s", e)
        return 2
    return _finish(store.import_replace(text))


def _cmd_space(args, store: SpacesStore, console: Console) -> int:
    if args.action == "add":
        res = store.create_folder(args.name, args.emoji)
        if res.ok:
            console.print(res.id, highlight=False)
        return _finish(res)
    if args.action == "rename":
        return _finish(store.rename_folder(args.id, args.name, args.emoji))
    if args.action == "delete":
        return _finish(store.delete_folder(args.id))
    if args.action == "use":
        return _finish(store.set_active_folder(args.id))
    if args.action == "move":
        return _finish(store.reorder_folders(args.from_id, args.to_id))
    return 2


def _cmd_link(args, store: SpacesStore, console: Console) -> int:
    if args.action == "add":
        res = store.create_link(args.space, args.title, args.url)
        if res.ok:
            console.print(res.id, highlight=False)
        return _finish(res)
    if args.action == "edit":
        return _finish(store.update_link(args.space, args.id, args.title, args.url))
    if args.action == "delete":
        return _finish(store.delete_link(args.space, args.id))
    if args.action == "move":
        return _finish(store.reorder_links(args.space, args.from_id, args.to_id))
    return 2


def _cmd_settings(args, store: SpacesStore, console: Console) -> int:
    if any(v is not None for v in (args.mode, args.confirm, args.max, args.delay)):
        res = store.update_settings(
            open_mode=args.mode,
            confirm_open_all=None if args.confirm is None else args.confirm == "on",
            max_open_all=args.max,
            open_delay_ms=args.delay,
        )
        if not res.ok:
            return _finish(res)
    s = store.get_document().settings
    console.print(
        f"mode={s.open_mode} confirm={'on' if s.confirm_open_all else 'off'} "
        f"max={s.max_open_all} delay={s.open_delay_ms}ms",
        highlight=False,
    )
    return 0


def _cmd_open(args, store: SpacesStore, console: Console) -> int:
    plan = store.open_all(args.space)
    if not plan.urls:
        log.error("No valid links in this space.")
        return 2
    if args.dry_run:
        for url in plan.urls:
            console.print(url, highlight=False)
        if plan.truncated:
            log.warning("Capped at %d of %d links.", len(plan.urls), plan.total)
        return 0
    if plan.confirm and not args.yes and not Confirm.ask(plan.prompt, console=console):
        return 0

    report = OpenSequence(plan, _browser_opener(plan.open_mode)).run()
    if report.blocked:
        store.notifier.notify(report.notice or "")
        return 2
    log.info("Opened %d link(s), %d failed.", report.opened, report.failed)
    return 0


def _browser_opener(open_mode: str) -> Opener:
    def _open(url: str, group: Optional[Any]) -> Optional[Any]:
        # The first open in window mode gets a fresh window; the rest join it as tabs.
        if open_mode == "window" and group is None:
            ok = webbrowser.open_new(url)
        else:
            ok = webbrowser.open_new_tab(url)
        return True if ok else None

    return _open


def _print_spaces(store: SpacesStore, console: Console) -> None:
    doc = store.get_document()
    root = Tree(f"{len(doc.folders)} space(s)")
    for folder in doc.folders:
        marker = " [bold]*[/bold]" if folder.id == doc.active_folder_id else ""
        node = root.add(f"{escape(folder.emoji)} {escape(folder.name)}{marker}  [dim]{folder.id} · {len(folder.links)} link(s)[/dim]")
        if folder.id != doc.active_folder_id:
            continue
        for link in folder.links:
            node.add(f"{escape(link.title)}  [dim]{escape(domain_of(link.url) or link.url)} · {link.id}[/dim]")
    console.print(root, highlight=False)


def _finish(res: MutationResult) -> int:
    if res.ok:
        return 0
    log.error("%s", res.message)
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
