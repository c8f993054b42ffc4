#!/usr/bin/env python3
"""
Main entry point for Message Archive.

Provides a command-line interface for validating a backup, building the
local index from it, and browsing the indexed conversations.
"""
from typing import List, Optional
import argparse
import os
import sys
import logging

import uvicorn

from message_archive.analysis import compute_chat_analytics
from message_archive.backup import validate_backup
from message_archive.config import Config, get_config
from message_archive.etl.pipeline import run_ingestion
from message_archive.index_store import IndexStore
from message_archive.logger_config import setup_logging
from message_archive.utils import Colors, format_item_count, format_timestamp, truncate
from message_archive.visualization import plot_activity_over_time, plot_link_categories

logger = logging.getLogger(__name__)


def print_section(title: str) -> None:
    """Print a formatted section title."""
    print(f"\n{Colors.BOLD}{Colors.HEADER}{'=' * 60}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.HEADER}{title}{Colors.ENDC}")
    print(f"{Colors.BOLD}{Colors.HEADER}{'=' * 60}{Colors.ENDC}\n")


def _parse_args(argv: List[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Browse the messages in an unencrypted iOS backup (read-only)."
    )
    parser.add_argument(
        "--index-path",
        default=None,
        help="Path to the local index (defaults to ~/.message_archive/vault.db).",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
        help="Logging level (defaults to $LOG_LEVEL or INFO).",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("validate", help="Check that a backup folder can be scanned.")
    p.add_argument("backup", help="Path to the backup folder.")

    p = sub.add_parser("scan", help="Rebuild the index from a backup folder.")
    p.add_argument("backup", nargs="?", default=None, help="Path to the backup folder.")
    p.add_argument(
        "--phones",
        action="store_true",
        help="Also record phone numbers found in message text.",
    )

    sub.add_parser("contacts", help="List indexed contacts.")

    p = sub.add_parser("messages", help="Show one page of a conversation.")
    p.add_argument("contact_id", type=int)
    p.add_argument("--page", type=int, default=0)
    p.add_argument("--page-size", type=int, default=100)

    p = sub.add_parser("links", help="Show links shared in a conversation.")
    p.add_argument("contact_id", type=int)
    p.add_argument("--page", type=int, default=0)
    p.add_argument("--page-size", type=int, default=50)
    p.add_argument("--plot", default=None, help="Write a category bar chart to this HTML file.")

    p = sub.add_parser("search", help="Search message text.")
    p.add_argument("text")

    p = sub.add_parser("analytics", help="Show conversation analytics.")
    p.add_argument("contact_id", type=int)
    p.add_argument("--plot", default=None, help="Write an activity chart to this HTML file.")

    p = sub.add_parser("serve", help="Serve the read-only HTTP API.")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)

    return parser.parse_args(argv)


def _cmd_validate(args: argparse.Namespace) -> int:
    info = validate_backup(args.backup)
    if not info.is_valid:
        print(f"{Colors.FAIL}{info.error_message}{Colors.ENDC}")
        return 2 if info.is_encrypted else 1
    print(f"{Colors.OKGREEN}{info}{Colors.ENDC}")
    return 0


def _cmd_scan(args: argparse.Namespace) -> int:
    config = get_config(backup_path=args.backup)
    if not config.backup_path:
        print(f"{Colors.FAIL}Error: no backup folder given.{Colors.ENDC}")
        print(f"Pass one on the command line or set ${config.BACKUP_PATH_ENV}.")
        return 1

    result = run_ingestion(
        config.backup_path,
        index_db_path=args.index_path or config.index_db_path,
        progress=lambda message: print(f"  {message}"),
        extract_phone_numbers=args.phones,
    )
    if not result.success:
        print(f"{Colors.FAIL}{result}{Colors.ENDC}")
        if result.error_details:
            logger.debug(result.error_details)
        return 2 if result.is_encrypted else 1
    print(f"{Colors.OKGREEN}{result}{Colors.ENDC}")
    return 0


def _cmd_contacts(store: IndexStore, args: argparse.Namespace) -> int:
    print_section("Contacts")
    for contact in store.list_contacts():
        print(f"{contact.id:>6}  {contact.display_name:30s} {format_item_count(contact.item_count):>14}")
    return 0


def _cmd_messages(store: IndexStore, args: argparse.Namespace) -> int:
    contact = store.get_contact(args.contact_id)
    if contact is None:
        print(f"{Colors.FAIL}Unknown contact: {args.contact_id}{Colors.ENDC}")
        return 1
    print_section(f"{contact.display_with_count} - page {args.page}")
    for m in store.list_messages(contact.id, page=args.page, page_size=args.page_size):
        direction = "You" if m.is_from_me else "Them"
        print(f"[{format_timestamp(m.timestamp)}] {direction}: {m.text}")
    return 0


def _cmd_links(store: IndexStore, args: argparse.Namespace) -> int:
    contact = store.get_contact(args.contact_id)
    if contact is None:
        print(f"{Colors.FAIL}Unknown contact: {args.contact_id}{Colors.ENDC}")
        return 1
    links = store.list_links(contact.id, page=args.page, page_size=args.page_size)
    print_section(f"Links shared with {contact.display_name}")
    for link in links:
        print(f"[{format_timestamp(link.timestamp)}] {link.category.value:10s} {link.url}")
    if args.plot:
        plot_link_categories(links, output_file=args.plot)
    return 0


def _cmd_search(store: IndexStore, args: argparse.Namespace) -> int:
    results = store.search_messages(args.text)
    print_section(f"Search: {args.text!r} ({len(results)} results)")
    for m in results:
        print(f"[{format_timestamp(m.timestamp)}] #{m.contact_id}: {truncate(m.text)}")
    return 0


def _cmd_analytics(store: IndexStore, args: argparse.Namespace) -> int:
    contact = store.get_contact(args.contact_id)
    if contact is None:
        print(f"{Colors.FAIL}Unknown contact: {args.contact_id}{Colors.ENDC}")
        return 1
    analytics = compute_chat_analytics(store, contact)
    if analytics is None:
        print("No messages or links for this contact.")
        return 0

    print_section(f"Analytics: {analytics.contact_name}")
    print(f"Total items: {analytics.total_messages:,}")
    print(f"Sent by you: {analytics.sent_by_me:,} ({analytics.sent_by_me_percent:.0%})")
    print(f"Sent by them: {analytics.sent_by_them:,} ({analytics.sent_by_them_percent:.0%})")
    if analytics.most_active_day:
        print(f"Most active day: {analytics.most_active_day} ({analytics.most_active_day_count})")
    if analytics.longest_streak_days:
        print(
            f"Longest streak: {analytics.longest_streak_days} days "
            f"({analytics.streak_start} - {analytics.streak_end})"
        )
    for label, words in (
        ("Your words", analytics.long_words_me),
        ("Their words", analytics.long_words_them),
        ("Your emojis", analytics.top_emojis_me),
        ("Their emojis", analytics.top_emojis_them),
    ):
        if words:
            print(f"{label}: " + ", ".join(f"{w.word} ({w.count})" for w in words))

    if args.plot:
        plot_activity_over_time(store.get_messages_for_analytics(contact.id), output_file=args.plot)
    return 0


def _cmd_serve(args: argparse.Namespace) -> int:
    if args.index_path:
        os.environ[Config.INDEX_PATH_ENV] = args.index_path
    uvicorn.run("message_archive.api:app", host=args.host, port=args.port)
    return 0


_STORE_COMMANDS = {
    "contacts": _cmd_contacts,
    "messages": _cmd_messages,
    "links": _cmd_links,
    "search": _cmd_search,
    "analytics": _cmd_analytics,
}


def main(argv: Optional[List[str]] = None):
    """Main function."""
    if argv is None:
        argv = sys.argv[1:]
    args = _parse_args(argv)
    setup_logging(level=getattr(logging, args.log_level.upper()) if args.log_level else None)

    if args.command == "validate":
        sys.exit(_cmd_validate(args))
    if args.command == "scan":
        sys.exit(_cmd_scan(args))
    if args.command == "serve":
        sys.exit(_cmd_serve(args))

    config = get_config()
    index_path = args.index_path or config.index_db_path
    try:
        with IndexStore(index_path) as store:
            sys.exit(_STORE_COMMANDS[args.command](store, args))
    except Exception as e:
        print(f"{Colors.FAIL}Error: {e}{Colors.ENDC}")
        logging.exception("Error during execution")
        sys.exit(1)


if __name__ == '__main__':
    main()
