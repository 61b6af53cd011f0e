from django.apps import AppConfig


class PackingZoneConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'packing_zone'
    verbose_name = 'Packing Zone'
