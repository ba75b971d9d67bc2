"""
Scripts - Cleanup Test Machines.

============================================================
RESPONSIBILITY
============================================================
Removes machines created for testing, with their heartbeat,
telemetry and cleaning logs.

Only machines carrying the is_test flag are ever touched.
A --machine-id allow-list narrows the selection further; an
id in the list that is not test-flagged is skipped.

============================================================
USAGE
============================================================
python -m scripts.cleanup_test_machines            (dry run)
python -m scripts.cleanup_test_machines --execute
python -m scripts.cleanup_test_machines --execute --machine-id m-1 --machine-id m-2

Options:
  --execute      Actually delete (default is a dry run)
  --machine-id   Restrict to these ids (repeatable)
  --env-file     .env file to load configuration from

============================================================
"""

import argparse
import asyncio
import logging
import sys
from typing import List, Optional, Sequence

from core.config import load_config
from core.exceptions import FleetException
from fleet.models import Machine
from fleet.registry import MachineRegistry
from storage import create_store


logger = logging.getLogger("cleanup_test_machines")


async def select_test_machines(
    registry: MachineRegistry,
    machine_ids: Optional[Sequence[str]] = None,
) -> List[Machine]:
    """
    Machines eligible for cleanup.

    Args:
        registry: Machine registry
        machine_ids: Optional allow-list
    """
    machines = await registry.list_all()

    if not machine_ids:
        return [m for m in machines if m.is_test]

    by_id = {m.id: m for m in machines}
    selected = []
    for machine_id in machine_ids:
        machine = by_id.get(machine_id)
        if machine is None:
            logger.warning(f"Machine {machine_id} not found, skipping")
        elif not machine.is_test:
            logger.warning(f"Machine {machine_id} ({machine.name}) is not a test machine, skipping")
        else:
            selected.append(machine)
    return selected


async def cleanup_test_machines(
    registry: MachineRegistry,
    machine_ids: Optional[Sequence[str]] = None,
    execute: bool = False,
) -> List[Machine]:
    """
    Delete (or list, on a dry run) test machines.

    Returns:
        The machines selected for deletion
    """
    machines = await select_test_machines(registry, machine_ids)

    if not machines:
        logger.info("No test machines to clean up")
        return machines

    for machine in machines:
        if execute:
            await registry.delete(machine.id)
            logger.info(f"Deleted {machine.id} ({machine.name}, serial {machine.serial_number})")
        else:
            logger.info(f"[dry run] Would delete {machine.id} ({machine.name}, serial {machine.serial_number})")

    if not execute:
        logger.info(f"Dry run: {len(machines)} machines selected. Re-run with --execute to delete.")

    return machines


async def run(args: argparse.Namespace) -> int:
    config = load_config(args.env_file)
    store = await create_store(config.database)
    try:
        registry = MachineRegistry(store)
        await cleanup_test_machines(registry, args.machine_id, execute=args.execute)
    finally:
        await store.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Delete machines flagged as test machines")
    parser.add_argument("--execute", action="store_true",
                        help="Delete the selected machines (default: dry run)")
    parser.add_argument("--machine-id", action="append", default=None,
                        help="Only consider this machine id (repeatable)")
    parser.add_argument("--env-file", default=None, help=".env file to load")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(run(args))
    except FleetException as e:
        logger.error(f"Cleanup failed: {e.message}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
