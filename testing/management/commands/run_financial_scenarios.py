from django.core.management.base import BaseCommand, CommandError

from testing.financial.runner import AVAILABLE_SCENARIOS, run_all, run_scenario


class Command(BaseCommand):
    help = "Run booking, dispute and payout money scenarios against the configured database (ALLOW_TEST_SCENARIOS=True)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--scenario",
            type=str,
            choices=sorted(AVAILABLE_SCENARIOS),
            help="Run only one scenario.",
        )
        parser.add_argument(
            "--list",
            action="store_true",
            help="List the available scenarios and exit.",
        )

    def handle(self, *args, **options):
        if options.get("list"):
            for name, module in AVAILABLE_SCENARIOS.items():
                self.stdout.write(f"{name:20} {module.__name__.rsplit('.', 1)[-1]}")
            return

        scenario = options.get("scenario")
        self.stdout.write(self.style.WARNING("=== Financial Scenario Runner ==="))
        try:
            if scenario:
                self.stdout.write(f"Running scenario: {scenario}")
                run_scenario(scenario)
            else:
                self.stdout.write(f"Running {len(AVAILABLE_SCENARIOS)} scenarios...")
                run_all()
        except Exception as exc:
            raise CommandError(f"Scenario run failed: {exc}")
        self.stdout.write(self.style.SUCCESS("All requested scenarios passed."))
