from django.apps import AppConfig
import logging
import os
import sys

logger = logging.getLogger(__name__)


class CommonConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'common'

    def ready(self):
        """
        Start the background scheduler once Django is ready.
        Only in a serving process (runserver's reloaded child, gunicorn or
        uwsgi); never in migrations, tests or one-off management commands.
        """
        from django.conf import settings

        if not getattr(settings, 'ENABLE_BACKGROUND_SCHEDULER', True):
            return

        program = os.path.basename(sys.argv[0]) if sys.argv else ''
        command = sys.argv[1] if len(sys.argv) > 1 else ''
        serving = (
            (command == 'runserver' and os.environ.get('RUN_MAIN') == 'true')
            or program.startswith(('gunicorn', 'uwsgi'))
        )
        if not serving:
            return

        try:
            from .scheduler import start_scheduler
            start_scheduler()
            logger.info("Background task scheduler initialized")
        except Exception as e:
            logger.error(f"Failed to initialize scheduler: {str(e)}", exc_info=True)
