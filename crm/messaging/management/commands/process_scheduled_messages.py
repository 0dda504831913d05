"""
Django management command to send scheduled messages that are due.
Meant to be run from cron, e.g. every minute.
"""
import time

from django.core.management.base import BaseCommand

from crm.messaging.services import process_due_messages


class Command(BaseCommand):
    help = 'Send every pending scheduled message whose time has come'

    def add_arguments(self, parser):
        parser.add_argument(
            '--loop',
            action='store_true',
            help='Keep running and process due messages every --interval seconds',
        )
        parser.add_argument(
            '--interval',
            type=int,
            default=60,
            help='Seconds between runs when --loop is given (default: 60)',
        )

    def handle(self, *args, **options):
        while True:
            results = process_due_messages()
            self.stdout.write(self.style.SUCCESS(
                f"Processed {results['processed']} messages: {results['sent']} sent, {results['failed']} failed"
            ))
            for error in results['errors']:
                self.stdout.write(self.style.ERROR(f"  Message {error['message_id']}: {error['error']}"))
            if not options['loop']:
                break
            time.sleep(options['interval'])
