from pharmabridge.models.account import Pharmacy, Wholesaler, Admin
from pharmabridge.models.product import Product
from pharmabridge.models.purchase_request import PurchaseRequest
from pharmabridge.models.inventory import PharmacyInventory
from pharmabridge.models.notification import Notification

__all__ = ["Pharmacy", "Wholesaler", "Admin", "Product", "PurchaseRequest", "PharmacyInventory", "Notification"]
