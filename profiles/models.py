from django.db import models


class UserProfile(models.Model):
    """
    Profile of the (single) tracker owner. Always accessed through `load()`.
    """
    ACTIVITY_LEVEL_CHOICES = [
        ('sedentary', 'Sedentary'),
        ('light', 'Lightly active'),
        ('moderate', 'Moderately active'),
        ('active', 'Active'),
        ('very_active', 'Very active'),
    ]

    name = models.CharField(max_length=200, blank=True, default='')
    height_cm = models.DecimalField(max_digits=5, decimal_places=1, null=True, blank=True)
    target_weight = models.DecimalField(
        max_digits=5,
        decimal_places=2,
        null=True,
        blank=True,
        help_text="Goal weight in pounds (lbs)"
    )
    activity_level = models.CharField(max_length=20, choices=ACTIVITY_LEVEL_CHOICES, blank=True, default='')
    timezone = models.CharField(max_length=64, default='UTC')

    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = 'User Profile'
        verbose_name_plural = 'User Profile'

    def __str__(self):
        return self.name or 'User Profile'

    @classmethod
    def load(cls):
        profile, _ = cls.objects.get_or_create(pk=1)
        return profile
