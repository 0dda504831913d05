from django.apps import AppConfig


class RolesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'crm.roles'

    def ready(self):
        """Import signals when app is ready"""
        import crm.roles.signals  # noqa: F401  # Permission cache invalidation
