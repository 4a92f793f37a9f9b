"""
Command-line entry point for Kitchen Stock.

Thin argparse front end over the ledger services, for scripting and
operations use.

Usage Examples:
    # Create the database tables
    kitchen-stock init-db

    # Catalog
    kitchen-stock add-kitchen "Koramangala" CK-01
    kitchen-stock add-material "Basmati Rice" kg Grains

    # Receive 10 kg at 2.00 into kitchen 1
    kitchen-stock receive --kitchen 1 --material 7 --quantity 10 --unit-cost 2.00

    # Consume 12 kg FIFO (or preview with --dry-run)
    kitchen-stock consume --kitchen 1 --material 7 --quantity 12

    # Set counted quantity
    kitchen-stock adjust --kitchen 1 --material 7 --new-quantity 5 --reason "Damaged goods"

    # Set the current price of a material
    kitchen-stock set-cost --material 7 --cost 2.10

    # Outlet 3 requests 5 kg; the kitchen packs request 12
    kitchen-stock request --kitchen 1 --outlet 3 --item 7=5
    kitchen-stock pending --kitchen 1
    kitchen-stock pack 12

    # Value remaining stock and list low stock
    kitchen-stock valuate --kitchen 1
    kitchen-stock low-stock --kitchen 1
"""

import argparse
import logging
import sys

from kitchen_stock.services import (
    adjustment_service,
    batch_ledger_service,
    catalog_service,
    inventory_report_service,
    request_service,
)
from kitchen_stock.services.database import initialize_app_database
from kitchen_stock.services.dto_utils import cost_to_string, quantity_to_string
from kitchen_stock.services.exceptions import InsufficientStock, ServiceError
from kitchen_stock.utils.constants import (
    ADJUSTMENT_REASONS,
    APP_NAME,
    APP_VERSION,
    RAW_MATERIAL_CATEGORIES,
    RAW_MATERIAL_UNITS,
)

logger = logging.getLogger(__name__)


def init_db_cmd(args) -> int:
    """Create the database and its tables."""
    print("Initializing database...")
    initialize_app_database()
    print("Database initialized successfully")
    return 0


def add_kitchen_cmd(args) -> int:
    kitchen = catalog_service.create_kitchen(args.name, args.code, address=args.address)
    print(f"Created cloud kitchen {kitchen.id}: {kitchen.name} ({kitchen.code})")
    return 0


def add_outlet_cmd(args) -> int:
    outlet = catalog_service.create_outlet(args.kitchen, args.name, args.code)
    print(f"Created outlet {outlet.id}: {outlet.name} ({outlet.code})")
    return 0


def add_material_cmd(args) -> int:
    material = catalog_service.create_raw_material(
        args.name,
        args.unit,
        args.category,
        code=args.code,
        low_stock_threshold=args.low_stock_threshold,
    )
    print(f"Created raw material {material.id}: {material.name} ({material.code})")
    return 0


def receive_cmd(args) -> int:
    batch = batch_ledger_service.receive_batch(
        args.kitchen, args.material, args.quantity, args.unit_cost
    )
    print(
        f"Received batch {batch.id}: {quantity_to_string(batch.quantity_purchased)} "
        f"@ {batch.unit_cost}"
    )
    return 0


def consume_cmd(args) -> int:
    try:
        plan = batch_ledger_service.consume(
            args.kitchen, args.material, args.quantity, dry_run=args.dry_run
        )
    except InsufficientStock as e:
        print(
            f"ERROR: Insufficient stock: requested {quantity_to_string(e.requested)}, "
            f"available {quantity_to_string(e.available)}, "
            f"short by {quantity_to_string(e.shortfall)}"
        )
        return 2

    print("Plan (dry run):" if args.dry_run else "Consumed:")
    for line in plan.lines:
        print(f"  batch {line.batch_id}: {quantity_to_string(line.quantity)} @ {line.unit_cost}")
    print(f"Total cost: {cost_to_string(plan.total_cost)}")
    return 0


def adjust_cmd(args) -> int:
    result = adjustment_service.adjust(
        args.kitchen,
        args.material,
        args.new_quantity,
        args.reason,
        details=args.details,
        actor=args.actor,
        unit_cost=args.unit_cost,
    )
    if not result.changed:
        print(f"No change: on hand is already {quantity_to_string(result.old_quantity)}")
        return 0
    print(
        f"Adjusted ({result.adjustment_type}): {quantity_to_string(result.old_quantity)} -> "
        f"{quantity_to_string(result.new_quantity)}"
    )
    return 0


def valuate_cmd(args) -> int:
    valuation = batch_ledger_service.valuate(args.kitchen, args.material)
    print(f"Quantity on hand: {quantity_to_string(valuation.total_quantity)}")
    print(f"Total value:      {cost_to_string(valuation.total_value)}")
    print(f"Average cost:     {valuation.average_unit_cost}")
    return 0


def low_stock_cmd(args) -> int:
    rows = inventory_report_service.get_low_stock_items(args.kitchen)
    if not rows:
        print("No materials at or below their low stock threshold")
        return 0
    print(f"{'Code':<14} {'Material':<30} {'On hand':>12} {'Threshold':>12}")
    for row in rows:
        print(
            f"{row['code']:<14} {row['name'][:30]:<30} "
            f"{quantity_to_string(row['on_hand']):>12} "
            f"{quantity_to_string(row['low_stock_threshold']):>12}"
        )
    return 0


def set_cost_cmd(args) -> int:
    price = catalog_service.set_material_cost(args.material, args.cost, recorded_by=args.actor)
    print(f"Raw material {price.raw_material_id} now costs {price.cost_per_unit} per unit")
    return 0


def _parse_item(value: str):
    material, sep, quantity = value.partition("=")
    if not sep or not material.strip().isdigit():
        raise argparse.ArgumentTypeError(f"expected MATERIAL_ID=QUANTITY, got '{value}'")
    return {"raw_material_id": int(material), "quantity": quantity.strip()}


def request_cmd(args) -> int:
    request = request_service.create_allocation_request(
        args.kitchen, args.outlet, args.item, requested_by=args.actor, notes=args.notes
    )
    print(f"Created allocation request {request.id} with {len(request.items)} item(s)")
    return 0


def pending_cmd(args) -> int:
    totals = request_service.get_pending_totals(args.kitchen)
    if not totals:
        print("No unpacked requests today")
        return 0
    print(f"{'Material':>10} {'To pack':>12}")
    for material_id, quantity in totals.items():
        print(f"{material_id:>10} {quantity_to_string(quantity):>12}")
    return 0


def pack_cmd(args) -> int:
    try:
        stock_out = request_service.fulfill_allocation_request(
            args.request, allocated_by=args.actor
        )
    except InsufficientStock as e:
        print(
            f"ERROR: Insufficient stock for raw material {e.raw_material_id}: "
            f"short by {quantity_to_string(e.shortfall)}"
        )
        return 2
    print(f"Packed request {args.request} as stock-out {stock_out.id}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="kitchen-stock",
        description="FIFO stock ledger for cloud kitchens",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    parser.add_argument("--version", action="version", version=f"{APP_NAME} {APP_VERSION}")

    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    init_parser = subparsers.add_parser("init-db", help="Create the database tables")
    init_parser.set_defaults(handler=init_db_cmd)

    kitchen_parser = subparsers.add_parser("add-kitchen", help="Create a cloud kitchen")
    kitchen_parser.add_argument("name")
    kitchen_parser.add_argument("code")
    kitchen_parser.add_argument("--address")
    kitchen_parser.set_defaults(handler=add_kitchen_cmd)

    outlet_parser = subparsers.add_parser("add-outlet", help="Create an outlet of a kitchen")
    outlet_parser.add_argument("--kitchen", type=int, required=True)
    outlet_parser.add_argument("name")
    outlet_parser.add_argument("code")
    outlet_parser.set_defaults(handler=add_outlet_cmd)

    material_parser = subparsers.add_parser("add-material", help="Create a raw material")
    material_parser.add_argument("name")
    material_parser.add_argument("unit", choices=RAW_MATERIAL_UNITS)
    material_parser.add_argument("category", choices=RAW_MATERIAL_CATEGORIES)
    material_parser.add_argument("--code", help="Material code (generated when omitted)")
    material_parser.add_argument("--low-stock-threshold", default="0")
    material_parser.set_defaults(handler=add_material_cmd)

    receive_parser = subparsers.add_parser("receive", help="Receive a batch")
    receive_parser.add_argument("--kitchen", type=int, required=True)
    receive_parser.add_argument("--material", type=int, required=True)
    receive_parser.add_argument("--quantity", required=True)
    receive_parser.add_argument("--unit-cost", required=True)
    receive_parser.set_defaults(handler=receive_cmd)

    consume_parser = subparsers.add_parser("consume", help="Consume stock FIFO")
    consume_parser.add_argument("--kitchen", type=int, required=True)
    consume_parser.add_argument("--material", type=int, required=True)
    consume_parser.add_argument("--quantity", required=True)
    consume_parser.add_argument(
        "--dry-run", action="store_true", help="Show the plan without consuming"
    )
    consume_parser.set_defaults(handler=consume_cmd)

    adjust_parser = subparsers.add_parser("adjust", help="Set on-hand quantity")
    adjust_parser.add_argument("--kitchen", type=int, required=True)
    adjust_parser.add_argument("--material", type=int, required=True)
    adjust_parser.add_argument("--new-quantity", required=True)
    adjust_parser.add_argument(
        "--reason", required=True, help=f"e.g. {', '.join(ADJUSTMENT_REASONS)}"
    )
    adjust_parser.add_argument("--details")
    adjust_parser.add_argument("--actor")
    adjust_parser.add_argument("--unit-cost", help="Cost of an increment batch")
    adjust_parser.set_defaults(handler=adjust_cmd)

    valuate_parser = subparsers.add_parser("valuate", help="Value remaining stock")
    valuate_parser.add_argument("--kitchen", type=int, required=True)
    valuate_parser.add_argument("--material", type=int)
    valuate_parser.set_defaults(handler=valuate_cmd)

    low_stock_parser = subparsers.add_parser("low-stock", help="List low stock materials")
    low_stock_parser.add_argument("--kitchen", type=int, required=True)
    low_stock_parser.set_defaults(handler=low_stock_cmd)

    cost_parser = subparsers.add_parser("set-cost", help="Set the current price of a material")
    cost_parser.add_argument("--material", type=int, required=True)
    cost_parser.add_argument("--cost", required=True)
    cost_parser.add_argument("--actor")
    cost_parser.set_defaults(handler=set_cost_cmd)

    request_parser = subparsers.add_parser("request", help="Raise an outlet request")
    request_parser.add_argument("--kitchen", type=int, required=True)
    request_parser.add_argument("--outlet", type=int, required=True)
    request_parser.add_argument(
        "--item", type=_parse_item, action="append", required=True, help="MATERIAL_ID=QUANTITY"
    )
    request_parser.add_argument("--actor")
    request_parser.add_argument("--notes")
    request_parser.set_defaults(handler=request_cmd)

    pending_parser = subparsers.add_parser("pending", help="Today's quantities still to pack")
    pending_parser.add_argument("--kitchen", type=int, required=True)
    pending_parser.set_defaults(handler=pending_cmd)

    pack_parser = subparsers.add_parser("pack", help="Fulfil an outlet request")
    pack_parser.add_argument("request", type=int)
    pack_parser.add_argument("--actor")
    pack_parser.set_defaults(handler=pack_cmd)

    return parser


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    if not args.command:
        parser.print_help()
        return 1

    try:
        if args.command != "init-db":
            initialize_app_database()
        return args.handler(args)
    except ServiceError as e:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"ERROR: {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
