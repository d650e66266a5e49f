from django.contrib import admin
from .models import Section


@admin.register(Section)
class SectionAdmin(admin.ModelAdmin):
    list_display = ['label', 'enrolled_count', 'max_capacity', 'status']
    list_filter = ['status']
    search_fields = ['label']
    readonly_fields = ['enrolled_count']
