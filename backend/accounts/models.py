from django.db import models
from django.contrib.auth.models import AbstractUser


class User(AbstractUser):
    """Extended user model for reporters and volunteers"""

    email = models.EmailField(unique=True)
    phone_number = models.CharField(max_length=15, blank=True, default='')
    favourite_animal = models.CharField(max_length=50, blank=True, default='')
    avatar = models.ImageField(upload_to='avatars/', null=True, blank=True)
    reputation = models.IntegerField(default=0)
    email_verified = models.BooleanField(default=False)
    
    class Meta:
        db_table = 'users'
        
    def __str__(self):
        return self.username
