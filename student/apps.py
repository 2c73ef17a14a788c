from django.apps import AppConfig


class StudentConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'student'
    verbose_name = 'Student'

    def ready(self):
        """Import signals when app is ready."""
        import student.signals  # noqa
