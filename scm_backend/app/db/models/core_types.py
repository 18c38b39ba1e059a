import enum


class RoleCode(str, enum.Enum):
    admin = "ADMIN"
    store_manager = "STORE_MANAGER"
    procurement_staff = "PROCUREMENT_STAFF"
    inventory_staff = "INVENTORY_STAFF"


class StorageType(str, enum.Enum):
    cold = "cold"
    frozen = "frozen"


class POStatus(str, enum.Enum):
    draft = "draft"
    pending_approval = "pending_approval"
    approved = "approved"
    sent = "sent"
    confirmed = "confirmed"
    delivered = "delivered"
    cancelled = "cancelled"


class StockRequestStatus(str, enum.Enum):
    requested = "requested"
    po_generated = "po_generated"
    cancelled = "cancelled"


class StockRequestPriority(str, enum.Enum):
    low = "low"
    medium = "medium"
    high = "high"


class BatchStatus(str, enum.Enum):
    in_stock = "in_stock"
    low_stock = "low_stock"
    out_of_stock = "out_of_stock"
    expired = "expired"


class TransactionType(str, enum.Enum):
    receipt = "RECEIPT"
    issue = "ISSUE"
    adjustment = "ADJUSTMENT"


class ReferenceType(str, enum.Enum):
    po = "PO"
    grn = "GRN"
    adjustment = "ADJUSTMENT"
    sales = "SALES"
