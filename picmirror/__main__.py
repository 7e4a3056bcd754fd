"""main module"""

from __future__ import annotations

import argparse
import asyncio
import getpass
import os
import sys
from typing import Sequence

from aiohttp import ClientSession, ClientTimeout

from picmirror.config import AppContext, D1Config
from picmirror.d1 import D1Client
from picmirror.downloader import download_as_zip, download_file
from picmirror.errors import PicmirrorError
from picmirror.smms import SmmsClient
from picmirror.store import (
    PictureQuery,
    batch_delete_pictures,
    batch_update_remark,
    count_pictures,
    delete_picture,
    import_all,
    list_file_types,
    query_pictures,
    sync_one_call,
    toggle_favorite,
    upload_images,
)
from picmirror.utils import format_size

# Finite timeouts to avoid hanging forever (no overall cap, but idle/read capped)
TIMEOUT = ClientTimeout(total=None, connect=30, sock_connect=30, sock_read=300)


def _add_filters(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--type", dest="file_type", help="File type, e.g. png")
    favorite = parser.add_mutually_exclusive_group()
    favorite.add_argument(
        "--favorite", dest="favorite", action="store_const", const=True,
        help="Only favorites",
    )
    favorite.add_argument(
        "--no-favorite", dest="favorite", action="store_const", const=False,
        help="Only pictures not marked favorite",
    )
    parser.set_defaults(favorite=None)
    deleted = parser.add_mutually_exclusive_group()
    deleted.add_argument(
        "--deleted", dest="include_deleted", action="store_const", const=True,
        help="Only soft-deleted pictures",
    )
    deleted.add_argument(
        "--all", dest="include_deleted", action="store_const", const=None,
        help="Live and soft-deleted pictures",
    )
    parser.set_defaults(include_deleted=False)
    parser.add_argument("--filename", help="Filename substring")
    parser.add_argument("--store-name", help="Store name substring")
    parser.add_argument("--remark", help="Remark substring")
    parser.add_argument("--order", default="created_at_desc")
    parser.add_argument("--limit", type=int)
    parser.add_argument("--offset", type=int)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="picmirror",
        description="Mirror SM.MS upload history into Cloudflare D1 and manage it.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    config = sub.add_parser("config", help="Manage the D1 configuration")
    config_sub = config.add_subparsers(dest="action", required=True)
    config_set = config_sub.add_parser("set")
    config_set.add_argument("--account-id", required=True)
    config_set.add_argument("--database-id", required=True)
    config_set.add_argument("--api-token", required=True)
    config_sub.add_parser("show")
    config_sub.add_parser("delete")
    config_sub.add_parser("test")

    login = sub.add_parser("login", help="Get and store an SM.MS API token")
    login.add_argument("username")

    sync = sub.add_parser("sync", help="Sync one page of upload history")
    sync.add_argument("--page", type=int, default=1)

    sub.add_parser("import", help="Import the whole upload history")

    _add_filters(sub.add_parser("list", help="List mirrored pictures"))
    _add_filters(sub.add_parser("count", help="Count mirrored pictures"))
    sub.add_parser("types", help="List file types")

    favorite = sub.add_parser("favorite", help="Set or clear the favorite flag")
    favorite.add_argument("id", type=int)
    favorite.add_argument("state", choices=("on", "off"))

    remark = sub.add_parser("remark", help="Set or clear remarks")
    remark.add_argument("ids", type=int, nargs="+")
    remark.add_argument("--text", help="Remark text; omit to clear")

    upload = sub.add_parser("upload", help="Upload local files")
    upload.add_argument("paths", nargs="+")
    upload.add_argument("--remark")

    delete = sub.add_parser("delete", help="Delete pictures on SM.MS")
    delete.add_argument("ids", type=int, nargs="+")

    download = sub.add_parser("download", help="Download pictures (zip for several)")
    download.add_argument("ids", type=int, nargs="+")
    download.add_argument("--out", required=True)

    return parser


def _query_from_args(args: argparse.Namespace) -> PictureQuery:
    return PictureQuery(
        file_type=args.file_type,
        is_favorite=args.favorite,
        include_deleted=args.include_deleted,
        filename=args.filename,
        store_name=args.store_name,
        remark=args.remark,
        order_by=args.order,
        limit=args.limit,
        offset=args.offset,
    )


async def _run_config(ctx: AppContext, args: argparse.Namespace) -> None:
    if args.action == "set":
        config = D1Config(args.account_id, args.database_id, args.api_token)
        print(f"[^] {ctx.save_d1_config(config)}")
    elif args.action == "show":
        config = ctx.load_d1_config()
        print(f"[*] Config file: {ctx.config_path}")
        print(f"    account_id:  {config.account_id}")
        print(f"    database_id: {config.database_id}")
        print(f"    api_token:   {'*' * min(len(config.api_token), 8)}")
    elif args.action == "delete":
        print(f"[^] {ctx.delete_d1_config()}")
    else:
        async with ClientSession(timeout=TIMEOUT) as session:
            d1 = D1Client(ctx.load_d1_config(), session)
            print(f"[^] {await d1.test_connection()}")


async def dispatch(ctx: AppContext, args: argparse.Namespace) -> None:
    """Run one parsed command against the given application context."""
    if args.command == "config":
        await _run_config(ctx, args)
        return

    async with ClientSession(timeout=TIMEOUT) as session:
        if args.command == "login":
            password = os.environ.get("SMMS_PASSWORD") or getpass.getpass("[?] Password: ")
            token = await SmmsClient(session).fetch_token(args.username, password)
            ctx.save_smms_token(token)
            print("[^] SM.MS token saved")
            return

        d1 = D1Client(ctx.load_d1_config(), session)

        def host() -> SmmsClient:
            return SmmsClient(session, ctx.smms_token())

        if args.command == "sync":
            print(f"[^] {await sync_one_call(d1, host(), args.page)}")
        elif args.command == "import":
            stats = await import_all(
                d1,
                host(),
                max_pages=ctx.sync.max_pages,
                batch_size=ctx.sync.batch_size,
                max_consecutive_failures=ctx.sync.max_consecutive_failures,
                show_progress=True,
            )
            print(
                f"[^] Added: {stats.added}, Skipped: {stats.skipped}, "
                f"Marked deleted: {stats.deleted}"
            )
        elif args.command == "list":
            for pic in await query_pictures(d1, _query_from_args(args)):
                flags = ("*" if pic.is_favorite else " ") + ("x" if pic.is_deleted else " ")
                print(
                    f"{pic.id:>6} {flags} {pic.file_type:<5} {format_size(pic.size):>10} "
                    f"{pic.created_at}  {pic.filename}  {pic.url}"
                )
        elif args.command == "count":
            print(await count_pictures(d1, _query_from_args(args)))
        elif args.command == "types":
            print("\n".join(await list_file_types(d1)))
        elif args.command == "favorite":
            print(f"[^] {await toggle_favorite(d1, args.id, args.state == 'on')}")
        elif args.command == "remark":
            print(f"[^] {await batch_update_remark(d1, args.ids, args.text)}")
        elif args.command == "upload":
            for result in await upload_images(d1, host(), args.paths, args.remark):
                mark = "^" if result.success else "!"
                print(f"[{mark}] {result.filename}: {result.message} {result.url or ''}")
        elif args.command == "delete":
            if len(args.ids) == 1:
                print(f"[^] {await delete_picture(d1, host(), args.ids[0])}")
                return
            outcome = await batch_delete_pictures(d1, host(), args.ids)
            print(f"[^] Deleted: {outcome.success_count}, Failed: {outcome.failed_count}")
            for reason in outcome.failed_items:
                print(f"[!] {reason}")
        elif args.command == "download":
            pictures = await query_pictures(
                d1, PictureQuery(include_deleted=None, ids=list(args.ids))
            )
            if not pictures:
                raise PicmirrorError("No matching pictures")
            if len(pictures) == 1:
                print(f"[^] {await download_file(session, pictures[0].url, args.out)}")
                return
            count, failures = await download_as_zip(
                session, [(p.url, p.filename) for p in pictures], args.out
            )
            print(f"[^] Packed {count} file(s) into {args.out}")
            for reason in failures:
                print(f"[!] {reason}")


def run(argv: Sequence[str] | None = None) -> int:
    """
    Console entry point.

    Returns:
        int: Process exit code.
    """
    args = build_parser().parse_args(argv)
    try:
        asyncio.run(dispatch(AppContext(), args))
    except (PicmirrorError, ValueError) as error:
        print(f"[!] {error}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n[!] Exiting...")
        return 130
    return 0


if __name__ == "__main__":
    sys.exit(run())
