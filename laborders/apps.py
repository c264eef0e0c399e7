from django.apps import AppConfig


class LabOrdersConfig(AppConfig):
    name = 'laborders'
    verbose_name = 'Laboratory orders'
