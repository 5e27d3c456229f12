from django.db import models


class Product(models.Model):
    name = models.CharField(max_length=200)
    slug = models.SlugField(max_length=200, unique=True)
    # A product without a price cannot be ordered
    price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    def __str__(self):
        return self.name


class Variant(models.Model):
    """
    Purchasable SKU (product + color + size) with its own stock counter.

    The order core only ever touches ``stock``, and only through
    ``orders.ledger.StockLedger``.
    """

    product = models.ForeignKey(Product, on_delete=models.CASCADE, related_name='variants')
    sku = models.CharField(max_length=64, unique=True, null=True, blank=True)
    color = models.CharField(max_length=50, blank=True, default='')
    size = models.CharField(max_length=20, blank=True, default='')
    stock = models.PositiveIntegerField(default=0)
    is_available = models.BooleanField(default=True)

    class Meta:
        constraints = [
            models.CheckConstraint(condition=models.Q(stock__gte=0), name='variant_stock_non_negative'),
        ]

    def __str__(self):
        label = ' / '.join(part for part in (self.size, self.color) if part)
        return f"{self.product.name} ({label})" if label else self.product.name
