#!/usr/bin/env python3
"""
Campus Delivery Dispatch

Set up the dispatch database, seed demo runners and orders, and walk demo
deliveries through their lifecycle.
"""

import argparse
import logging
import random
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from db import init_database, get_connection, get_table_counts, DATABASE_PATH, TABLES
from generators import OrderGenerator, RunnerGenerator
from generators.geofence import get_zone_for_coordinates, random_point_in_zone
from models import (
    ActorRole,
    DeliveryType,
    FulfillmentMode,
    LocationSample,
    OrderStatus,
    RunnerAvailability,
)
from services import (
    ClaimCoordinator,
    DispatchError,
    LocationTracker,
    OrderStore,
    RunnerDirectory,
    StatusMachine,
)
from services.status_machine import MERCHANT_PATH, NETWORK_DELIVERY_PATH, NETWORK_PICKUP_PATH

logger = logging.getLogger(__name__)


def generate_data(num_orders: int, num_runners: int, seed: int = 42):
    """Seed runners and pending orders."""
    print(f"\n📊 Generating demo data...")
    print(f"   - {num_runners} runners")
    print(f"   - {num_orders} delivery orders\n")

    print("🚲 Generating runners...")
    runner_gen = RunnerGenerator(seed)
    runners = runner_gen.generate_batch(num_runners)
    runner_gen.save_to_db(runners)

    print("📝 Generating orders...")
    order_gen = OrderGenerator(seed)
    specs = order_gen.generate_batch(num_orders)
    order_gen.save_to_db(specs)

    print("\n✅ Data generation complete!")


def _walk(machine: StatusMachine, tracker: LocationTracker, order, actor_id: str,
          role: ActorRole, path: list[OrderStatus]):
    """Drive an order along `path`, publishing a position at each network step."""
    zone = get_zone_for_coordinates(order.pickup_lat, order.pickup_lng) if order.pickup_lat is not None else None
    for target in path[path.index(order.status) + 1:]:
        if order.runner_id and zone and order.status in (OrderStatus.ACCEPTED, OrderStatus.PICKED_UP):
            lat, lng = random_point_in_zone(zone)
            tracker.publish(order.id, order.runner_id, LocationSample(
                lat=lat, lng=lng, heading=random.uniform(0, 359), speed_mps=random.uniform(1, 6),
            ))
        order = machine.transition(order.id, actor_id, role, target).order
    return order


def simulate_deliveries(count: int):
    """Claim and complete up to `count` orders end to end."""
    store = OrderStore()
    runners = RunnerDirectory()
    machine = StatusMachine(store, runners)
    claims = ClaimCoordinator(store, runners)
    tracker = LocationTracker(store)

    online = runners.list_by_availability(RunnerAvailability.ONLINE)
    available = store.list_available(limit=count)
    print(f"\n🚚 Simulating {min(count, len(available))} network deliveries "
          f"with {len(online)} online runners...")

    delivered = 0
    for order, runner in zip(available, online):
        try:
            result = claims.claim(order.id, runner.runner_id, estimated_minutes=random.randint(10, 35))
            path = NETWORK_DELIVERY_PATH if order.delivery_type == DeliveryType.DELIVERY else NETWORK_PICKUP_PATH
            final = _walk(machine, tracker, result.order, runner.runner_id, ActorRole.RUNNER, path)
        except DispatchError as e:
            print(f"   ⚠️  Order {order.order_number}: {e.name} ({e.message})")
            continue
        delivered += 1
        print(f"   {final.order_number}: {final.status.value} by {runner.display_name}")

    # Merchant orders are driven by their sellers
    merchant = store.list_by_status(OrderStatus.PENDING, FulfillmentMode.MERCHANT, limit=count)
    for order in merchant:
        final = _walk(machine, tracker, order, order.seller_id, ActorRole.SELLER, MERCHANT_PATH)
        print(f"   {final.order_number}: {final.status.value} by seller")

    print(f"\n✅ Delivered {delivered} network orders")


def export_to_csv():
    """Export all tables to CSV files"""
    import pandas as pd

    export_dir = Path(__file__).parent / "exports"
    export_dir.mkdir(exist_ok=True)

    conn = get_connection()

    print("\n📁 Exporting to CSV...")
    for table in TABLES:
        df = pd.read_sql_query(f"SELECT * FROM {table}", conn)
        output_path = export_dir / f"{table}.csv"
        df.to_csv(output_path, index=False)
        print(f"   - {output_path} ({len(df)} rows)")

    conn.close()
    print("\n✅ Export complete!")


def show_stats():
    """Display current database statistics"""
    counts = get_table_counts()

    print("\n📈 Database Statistics:")
    print("-" * 30)
    for table, count in counts.items():
        print(f"   {table:18} {count:>8,} rows")
    print("-" * 30)
    print(f"   {'Total':18} {sum(counts.values()):>8,} rows")
    print(f"\n   Database: {DATABASE_PATH}")


def main():
    parser = argparse.ArgumentParser(
        description="Campus delivery dispatch database tools",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python main.py                         # Seed 100 orders and 20 runners (default)
  python main.py --orders 500 --runners 50
  python main.py --reset --orders 200    # Reset DB and seed fresh
  python main.py --simulate 10           # Claim and deliver 10 pending orders
  python main.py --export                # Export tables to CSV
  python main.py --stats                 # Show database statistics
        """
    )

    parser.add_argument(
        "--orders", "-n",
        type=int,
        default=100,
        help="Number of orders to generate (default: 100)"
    )

    parser.add_argument(
        "--runners",
        type=int,
        default=20,
        help="Number of runners to generate (default: 20)"
    )

    parser.add_argument(
        "--reset", "-r",
        action="store_true",
        help="Reset database before generating"
    )

    parser.add_argument(
        "--seed", "-s",
        type=int,
        default=42,
        help="Random seed for reproducibility (default: 42)"
    )

    parser.add_argument(
        "--simulate",
        type=int,
        metavar="COUNT",
        help="Run COUNT demo deliveries through the full lifecycle"
    )

    parser.add_argument(
        "--export", "-e",
        action="store_true",
        help="Export all tables to CSV files"
    )

    parser.add_argument(
        "--stats",
        action="store_true",
        help="Show database statistics"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Log lifecycle activity"
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    # Initialize database
    init_database(reset=args.reset)

    if args.stats:
        show_stats()
        return

    if args.export:
        export_to_csv()
        return

    if args.simulate:
        simulate_deliveries(args.simulate)
        show_stats()
        return

    generate_data(num_orders=args.orders, num_runners=args.runners, seed=args.seed)

    # Show final stats
    show_stats()


if __name__ == "__main__":
    main()
