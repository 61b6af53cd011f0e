from django.apps import AppConfig


class FgStoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'fg_store'
    verbose_name = 'FG Store & Dispatch'
