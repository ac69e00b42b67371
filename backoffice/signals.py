"""
Profile deletion removes the linked login account.

Employee and Patient hold a ``PROTECT`` reference to their account, so
the account can only go once the profile row itself is gone.
"""
from django.db.models.signals import post_delete
from django.dispatch import receiver

from backoffice.models import Employee, Patient, User


@receiver(post_delete, sender=Employee)
@receiver(post_delete, sender=Patient)
def delete_linked_account(sender, instance, **kwargs):
    if instance.user_id:
        User.objects.filter(pk=instance.user_id).delete()
