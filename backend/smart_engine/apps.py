from django.apps import AppConfig


class SmartEngineConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'smart_engine'
    verbose_name = 'Smart Engine'
