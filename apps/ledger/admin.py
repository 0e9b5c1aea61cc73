# ==========================================
# apps/ledger/admin.py
# ==========================================

from django.contrib import admin
from django.utils import timezone
from django.utils.html import format_html
from .models import Bill, LineItem, Claim, ClaimStatus


BADGE_STYLE = 'background: {}; color: {}; padding: 3px 8px; border-radius: 10px; font-size: 11px;'


class LineItemInline(admin.TabularInline):
    """Inline admin for line items within a bill."""
    model = LineItem
    extra = 0
    fields = ['position', 'name', 'quantity', 'price_per_unit', 'total_price']
    readonly_fields = ['total_price']
    ordering = ['position']


class ClaimInline(admin.TabularInline):
    """Inline admin for claims within a bill."""
    model = Claim
    extra = 0
    fields = ['guest_name', 'status', 'payment_method', 'tip_amount', 'received', 'expires_at']
    readonly_fields = fields
    show_change_link = True

    def has_add_permission(self, request, obj=None):
        """Claims are created by guests only."""
        return False


@admin.register(Bill)
class BillAdmin(admin.ModelAdmin):
    """Admin interface for bills."""

    list_display = [
        'id',
        'payer_name',
        'restaurant_name',
        'total_amount',
        'get_item_count',
        'get_claim_count',
        'created_at',
    ]
    search_fields = ['payer_name', 'payment_handle', 'restaurant_name', 'share_token']
    readonly_fields = ['id', 'share_token', 'created_at', 'updated_at']
    inlines = [LineItemInline, ClaimInline]
    date_hierarchy = 'created_at'

    fieldsets = (
        ('Payer', {
            'fields': ('id', 'payer_name', 'payment_handle', 'share_token')
        }),
        ('Receipt', {
            'fields': ('image_url', 'restaurant_name', 'total_amount')
        }),
        ('Metadata', {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    def get_item_count(self, obj):
        return obj.items.count()
    get_item_count.short_description = 'Items'

    def get_claim_count(self, obj):
        return obj.claims.count()
    get_claim_count.short_description = 'Claims'


@admin.register(Claim)
class ClaimAdmin(admin.ModelAdmin):
    """
    Admin interface for claims.

    Provides claim listing with status badges, filtering by status and
    received flag, and a bulk action to delete expired selections.
    """

    list_display = [
        'guest_name',
        'bill',
        'status_badge',
        'payment_method',
        'tip_amount',
        'received',
        'expires_at',
        'updated_at',
    ]
    list_filter = ['status', 'received', 'payment_method', 'created_at']
    search_fields = ['guest_name', 'session_id', 'bill__payer_name', 'bill__restaurant_name']
    readonly_fields = ['id', 'session_id', 'submitted_at', 'received_at', 'created_at', 'updated_at']
    ordering = ['-updated_at']

    def status_badge(self, obj):
        """Display claim status as colored badge."""
        if obj.status == ClaimStatus.PAID:
            bg, fg = '#6B8E5E', 'white'
        elif obj.is_expired():
            bg, fg = '#B85C5C', 'white'
        else:
            bg, fg = '#E5C49A', '#2C1810'
        return format_html('<span style="' + BADGE_STYLE + '">{}</span>', bg, fg, obj.get_status_display())
    status_badge.short_description = 'Status'
    status_badge.admin_order_field = 'status'

    actions = ['delete_expired_selections']

    @admin.action(description='Delete expired selections')
    def delete_expired_selections(self, request, queryset):
        """Delete selected SELECTING claims whose expiry has passed."""
        deleted, _ = queryset.filter(
            status=ClaimStatus.SELECTING,
            expires_at__lte=timezone.now()
        ).delete()
        self.message_user(request, f'Deleted {deleted} expired claim(s).')

    def get_queryset(self, request):
        """Optimize query with select_related."""
        return super().get_queryset(request).select_related('bill')
