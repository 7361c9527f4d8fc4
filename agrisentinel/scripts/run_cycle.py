"""
Assessment Cycle Runner

Manually run one assessment cycle for a farm against the in-memory directory.
Usage: python -m agrisentinel.scripts.run_cycle --farm FARM_ID [--observations FILE.json] [--scenario NAME]
"""
import argparse
import asyncio
import logging
import sys

from agrisentinel.exceptions import ValidationError
from agrisentinel.scripts.load_demo import SCENARIOS, load_scenario
from agrisentinel.services.events import get_event_port
from agrisentinel.services.farm_directory import get_farm_directory, load_observations_file
from agrisentinel.services.pipeline import get_pipeline


async def run_cycle_for_farm(farm_id: str):
    """Run one cycle and print its summary"""
    print(f"\n=== Assessment cycle for {farm_id} ===")

    pipeline = get_pipeline()
    result = await pipeline.run_cycle(farm_id)

    print(f"\n  Cycle: {result.cycle_id}")
    print(f"  Status: {result.status.value}" + (f" ({result.reason})" if result.reason else ""))
    print(f"  Duration: {result.duration_ms:.0f}ms")

    if result.assessment is not None:
        overall = result.assessment.overall_severity
        print(f"  Overall severity: {overall.value if overall else 'none'}")
        print("\n  Risks:")
        for assessed in result.assessment.predictions:
            flags = []
            if assessed.alertable:
                flags.append("ALERT")
            if assessed.uncertain:
                flags.append("uncertain")
            if assessed.prediction.is_degraded:
                flags.append("degraded")
            print(
                f"    {assessed.risk_type.value:<12} p={assessed.prediction.probability:.2f} "
                f"{assessed.severity.value:<8} conf={assessed.prediction.confidence:.2f} "
                f"in {assessed.hours_to_event:.0f}h {' '.join(flags)}"
            )

    for alert_id in result.alerts_created + result.alerts_refreshed:
        alert = pipeline.orchestrator.get(alert_id)
        if alert is None:
            continue
        print(f"\n  Alert {alert.id} [{alert.state.value}] delivery at {alert.delivery_time.isoformat()}")
        for line in alert.message.splitlines():
            print(f"    {line}")

    notifications = list(get_event_port().notifications)
    if notifications:
        print("\n  Admin notifications:")
        for notification in notifications:
            print(f"    [{notification.reason}] {notification.impact_estimate}")


async def main():
    """CLI entry point"""
    parser = argparse.ArgumentParser(description="Run one farm assessment cycle")
    parser.add_argument("--farm", "-f", required=True, help="Farm ID to assess")
    parser.add_argument("--observations", "-o", help="JSON file of observations to load first")
    parser.add_argument(
        "--scenario",
        "-s",
        choices=list(SCENARIOS) + ["all"],
        help="Load a demo scenario first"
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Show pipeline logs")

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    directory = get_farm_directory()
    if args.scenario:
        load_scenario(directory, args.scenario)
    if args.observations:
        try:
            directory.add_observations(load_observations_file(args.observations))
        except ValidationError as e:
            print(f"ERROR: {e}")
            sys.exit(1)

    await run_cycle_for_farm(args.farm)


if __name__ == "__main__":
    asyncio.run(main())
