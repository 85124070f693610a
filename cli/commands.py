"""
CLI subcommand implementations for vocab-store maintenance.

Subcommands::

    vocab-store status
    vocab-store concepts list
    vocab-store concepts set     CONCEPT_ID STATUS
    vocab-store concepts explore CONCEPT_ID
    vocab-store journal list     [--concept CONCEPT_ID]
    vocab-store journal add      CONTENT [--concept CONCEPT_ID]
    vocab-store journal edit     ENTRY_ID CONTENT
    vocab-store journal delete   ENTRY_ID
    vocab-store settings get     KEY
    vocab-store settings set     KEY VALUE
    vocab-store settings delete  KEY
    vocab-store pathways list
    vocab-store reset [--yes]

Global options ``--data-dir`` and ``--backend`` override the
``VOCAB_STORE_DATA_DIR`` / ``VOCAB_STORE_BACKEND`` environment variables.
"""

import argparse
import dataclasses
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv

from contracts.v1.schemas import ALL_CONCEPT_STATUSES
from vocab_platform import database as db
from vocab_platform.errors import DataLayerError
from vocab_platform.runtime.config import (
    MEMORY_DATA_DIR,
    SUPPORTED_BACKENDS,
    StoreConfig,
    load_config,
)

logger = logging.getLogger(__name__)


def _short(timestamp: str | None) -> str:
    """Trim a stored timestamp to minute precision for tables."""
    if not timestamp:
        return "-"
    return timestamp[:16].replace("T", " ")


def _preview(content: str, width: int = 50) -> str:
    line = content.replace("\n", " ")
    return line if len(line) <= width else line[: width - 3] + "..."


async def cmd_status(args):
    access = await db.get_data_access()
    onboarding = await db.get_onboarding_state()
    concepts = await db.get_all_user_concepts()
    entries = await db.get_journal_entries()
    pathways = await db.get_all_pathway_progress()

    print(f"Backend:    {access.backend_name}")
    print(f"Data dir:   {args.config.data_dir or MEMORY_DATA_DIR}")
    print("\nOnboarding:")
    print(f"  Completed:            {'yes' if onboarding.completed else 'no'}")
    print(f"  Goal:                 {onboarding.goal or '-'}")
    print(f"  Comfort level:        {onboarding.comfort_level}")
    print(f"  First concept viewed: {'yes' if onboarding.first_concept_viewed else 'no'}")
    print("\nProgress:")
    print(f"  Concepts:  {len(concepts)}")
    print(f"  Explored:  {await db.get_explored_count()}")
    print(f"  Resonates: {await db.get_resonates_count()}")
    print(f"  Journal:   {len(entries)}")
    print(f"  Pathways:  {len(pathways)}")


async def cmd_concepts(args):
    if args.concepts_action == "list":
        concepts = await db.get_all_user_concepts()
        if not concepts:
            print("No concepts found.")
            return
        print(f"\n{'Concept':<25}  {'Status':<11}  {'Explored':<16}  {'Updated'}")
        print("-" * 75)
        for c in concepts:
            print(f"{c.concept_id:<25}  {c.status:<11}  {_short(c.explored_at):<16}  {_short(c.updated_at)}")
    elif args.concepts_action == "set":
        concept = await db.update_concept_status(args.concept_id, args.status)
        print(f"✓ {concept.concept_id} is now {concept.status}")
    elif args.concepts_action == "explore":
        concept = await db.mark_concept_explored(args.concept_id)
        print(f"✓ {concept.concept_id} explored (first explored {_short(concept.explored_at)})")


async def cmd_journal(args):
    if args.journal_action == "list":
        if args.concept:
            entries = await db.get_journal_entries_for_concept(args.concept)
        else:
            entries = await db.get_journal_entries()
        if not entries:
            print("No journal entries found.")
            return
        print(f"\n{'ID':<32}  {'Concept':<20}  {'Created':<16}  {'Content'}")
        print("-" * 100)
        for e in entries:
            print(f"{e.id:<32}  {e.concept_id or '-':<20}  {_short(e.created_at):<16}  {_preview(e.content)}")
    elif args.journal_action == "add":
        entry = await db.create_journal_entry(args.concept, args.content)
        print(f"✓ Created journal entry {entry.id}")
    elif args.journal_action == "edit":
        entry = await db.update_journal_entry(args.id, args.content)
        print(f"✓ Updated journal entry {entry.id}")
    elif args.journal_action == "delete":
        await db.delete_journal_entry(args.id)
        print(f"✓ Deleted journal entry {args.id}")


async def cmd_settings(args):
    if args.settings_action == "get":
        value = await db.get_setting(args.key)
        if value is None:
            print(f"Setting '{args.key}' is not set.")
        else:
            print(value)
    elif args.settings_action == "set":
        await db.set_setting(args.key, args.value)
        print(f"✓ {args.key} = {args.value}")
    elif args.settings_action == "delete":
        await db.delete_setting(args.key)
        print(f"✓ Deleted setting '{args.key}'")


async def cmd_pathways(args):
    pathways = await db.get_all_pathway_progress()
    if not pathways:
        print("No pathways started.")
        return
    print(f"\n{'Pathway':<25}  {'Started':<16}  {'Completed':<16}  {'Concepts':>8}")
    print("-" * 75)
    for p in pathways:
        print(
            f"{p.pathway_id:<25}  {_short(p.started_at):<16}  "
            f"{_short(p.completed_at):<16}  {len(p.concepts_completed):>8}"
        )


async def cmd_reset(args):
    if not args.yes:
        confirm = input("Clear ALL onboarding, concept, journal, settings and pathway data? [y/N] ")
        if confirm.strip().lower() not in ("y", "yes"):
            print("Cancelled.")
            return
    await db.clear_all_data()
    print("✓ All data cleared.")


COMMANDS = {
    "status": cmd_status,
    "concepts": cmd_concepts,
    "journal": cmd_journal,
    "settings": cmd_settings,
    "pathways": cmd_pathways,
    "reset": cmd_reset,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="vocab-store",
        description="vocab-store — inspect and maintain on-device learning data",
    )
    parser.add_argument(
        "--data-dir",
        help=f"Data directory ('{MEMORY_DATA_DIR}' for a throwaway in-memory store)",
    )
    parser.add_argument(
        "--backend", choices=SUPPORTED_BACKENDS,
        help="Storage backend (default: from environment, else auto)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # --- status ---
    subparsers.add_parser("status", help="Show backend, onboarding and progress summary")

    # --- concepts ---
    p_concepts = subparsers.add_parser("concepts", help="Inspect or change concept progress")
    sp_concepts = p_concepts.add_subparsers(dest="concepts_action", required=True)

    sp_concepts.add_parser("list", help="List concepts in first-seen order")

    sp_set = sp_concepts.add_parser("set", help="Set a concept's status")
    sp_set.add_argument("concept_id", help="Concept ID")
    sp_set.add_argument("status", choices=ALL_CONCEPT_STATUSES, help="New status")

    sp_explore = sp_concepts.add_parser("explore", help="Mark a concept explored")
    sp_explore.add_argument("concept_id", help="Concept ID")

    # --- journal ---
    p_journal = subparsers.add_parser("journal", help="Manage journal entries")
    sp_journal = p_journal.add_subparsers(dest="journal_action", required=True)

    sp_jlist = sp_journal.add_parser("list", help="List entries, newest first")
    sp_jlist.add_argument("--concept", help="Only entries for this concept")

    sp_jadd = sp_journal.add_parser("add", help="Write a new entry")
    sp_jadd.add_argument("content", help="Entry text")
    sp_jadd.add_argument("--concept", help="Concept the entry is about")

    sp_jedit = sp_journal.add_parser("edit", help="Replace an entry's text")
    sp_jedit.add_argument("id", help="Entry ID")
    sp_jedit.add_argument("content", help="New entry text")

    sp_jdelete = sp_journal.add_parser("delete", help="Delete an entry")
    sp_jdelete.add_argument("id", help="Entry ID")

    # --- settings ---
    p_settings = subparsers.add_parser("settings", help="Read or write settings")
    sp_settings = p_settings.add_subparsers(dest="settings_action", required=True)

    sp_sget = sp_settings.add_parser("get", help="Print a setting")
    sp_sget.add_argument("key")

    sp_sset = sp_settings.add_parser("set", help="Store a setting")
    sp_sset.add_argument("key")
    sp_sset.add_argument("value")

    sp_sdelete = sp_settings.add_parser("delete", help="Remove a setting")
    sp_sdelete.add_argument("key")

    # --- pathways ---
    p_pathways = subparsers.add_parser("pathways", help="Inspect pathway progress")
    sp_pathways = p_pathways.add_subparsers(dest="pathways_action", required=True)
    sp_pathways.add_parser("list", help="List pathways, most recently started first")

    # --- reset ---
    p_reset = subparsers.add_parser("reset", help="Clear all stored data")
    p_reset.add_argument("--yes", action="store_true", help="Skip the confirmation prompt")

    return parser


def resolve_config(args) -> StoreConfig:
    """Environment configuration with command-line overrides applied."""
    config = load_config()
    overrides = {}
    if args.data_dir:
        overrides["data_dir"] = None if args.data_dir == MEMORY_DATA_DIR else Path(args.data_dir).expanduser()
    if args.backend:
        overrides["backend"] = args.backend
    return dataclasses.replace(config, **overrides) if overrides else config


async def main(argv: list[str] | None = None):
    """Entry point for the CLI."""
    load_dotenv()
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        args.config = resolve_config(args)
    except ValueError as e:
        print(f"Error: {e}")
        sys.exit(1)

    logging.basicConfig(
        level=args.config.log_level,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        await db.init_database(args.config)
        await COMMANDS[args.command](args)
    except (DataLayerError, ValueError) as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"Error: {e}")
        sys.exit(1)
    finally:
        db.reset_database()
