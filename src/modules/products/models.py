"""Product catalog models consumed by the order engine.

Business rules implemented:
- Only ``active`` listings can be purchased (checked by the pricing engine).
- Price must be greater than zero.
- Available stock can never be negative (CHECK constraint; decrements go
  through ``ProductDjangoRepository.reserve_stock`` only).
- A farmer is attributed to at most one vendor (``FarmerVendorLink``).
"""

from __future__ import annotations

from decimal import Decimal

import structlog
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models

from modules.core.models import BaseModel

logger = structlog.get_logger(__name__)


class ProductStatus(models.TextChoices):
    DRAFT = "draft", "Draft"
    ACTIVE = "active", "Active"
    INACTIVE = "inactive", "Inactive"
    SOLD_OUT = "sold_out", "Sold out"
    EXPIRED = "expired", "Expired"


class QualityGrade(models.TextChoices):
    PREMIUM = "premium", "Premium"
    STANDARD = "standard", "Standard"
    ECONOMY = "economy", "Economy"


class Product(BaseModel):
    """A farmer's produce listing.

    ``available_stock`` is expressed in ``unit`` (kg, piece, dozen...) and
    may be fractional.  ``images`` is a list of URLs; the first one is the
    cover image copied into order line snapshots.
    """

    farmer_id = models.UUIDField(db_index=True)
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    images = models.JSONField(default=list, blank=True)
    price_per_unit = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal("0.01"))],
    )
    unit = models.CharField(max_length=20, default="kg")
    available_stock = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=Decimal("0.00"),
    )
    quality_grade = models.CharField(
        max_length=20,
        choices=QualityGrade.choices,
        default=QualityGrade.STANDARD,
    )
    organic = models.BooleanField(default=False)
    harvest_date = models.DateTimeField(null=True, blank=True)
    status = models.CharField(
        max_length=20,
        choices=ProductStatus.choices,
        default=ProductStatus.DRAFT,
    )

    class Meta:
        db_table = "products"
        ordering = ["name"]
        indexes = [
            models.Index(fields=["status"], name="products_status_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(price_per_unit__gt=0),
                name="products_price_positive",
            ),
            models.CheckConstraint(
                condition=models.Q(available_stock__gte=0),
                name="products_stock_non_negative",
            ),
        ]

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def clean(self) -> None:
        super().clean()
        if self.price_per_unit is not None and self.price_per_unit <= 0:
            raise ValidationError({"price_per_unit": "Price must be greater than zero."})
        if self.available_stock is not None and self.available_stock < 0:
            raise ValidationError(
                {"available_stock": "Available stock cannot be negative."}
            )

    # ------------------------------------------------------------------
    # Snapshot helpers
    # ------------------------------------------------------------------

    @property
    def cover_image(self) -> str:
        return self.images[0] if self.images else ""

    @property
    def is_purchasable(self) -> bool:
        return self.status == ProductStatus.ACTIVE

    # ------------------------------------------------------------------
    # Display
    # ------------------------------------------------------------------

    def __str__(self) -> str:
        return f"{self.name} ({self.available_stock} {self.unit})"


class FarmerVendorLink(BaseModel):
    """Vendor that markets a farmer's produce.

    Orders copy ``vendor_id`` from this link at creation time.  Farmers
    without a link sell directly and their orders carry no vendor.
    """

    farmer_id = models.UUIDField(unique=True)
    vendor_id = models.UUIDField(db_index=True)

    class Meta:
        db_table = "farmer_vendor_links"

    def __str__(self) -> str:
        return f"farmer {self.farmer_id} -> vendor {self.vendor_id}"
