from django.core.management.base import BaseCommand

from Access.services import get_access_services


class Command(BaseCommand):
    help = "Ask the authorization edge function whether a user may perform an action on a resource."

    def add_arguments(self, parser):
        parser.add_argument("user_id")
        parser.add_argument("resource")
        parser.add_argument("action")
        parser.add_argument(
            "--local",
            action="store_true",
            help="Answer from the user's effective permission set instead of the check function.",
        )

    def handle(self, *args, **options):
        services = get_access_services()
        user_id, resource, action = options["user_id"], options["resource"], options["action"]
        if options["local"]:
            allowed = services.evaluator.has_permission(user_id, resource, action)
        else:
            allowed = services.evaluator.check_permission(user_id, resource, action)

        edge = services.monitor.get_metrics()["summary"]["edge_functions"]
        detail = f"user={user_id} {resource}:{action} edge_calls={edge['calls']} errors={edge['errors']}"
        if allowed:
            self.stdout.write(self.style.SUCCESS(f"Granted. {detail}"))
        else:
            self.stdout.write(self.style.WARNING(f"Denied. {detail}"))
