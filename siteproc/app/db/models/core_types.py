import enum

class Role(str, enum.Enum):
    admin = "admin"
    owner = "owner"
    engineer = "engineer"
    accountant = "accountant"

class Priority(str, enum.Enum):
    normal = "NORMAL"
    high = "HIGH"

class RequestStatus(str, enum.Enum):
    # phase d'approbation
    submitted = "SUBMITTED"
    pending = "PENDING"
    approved = "APPROVED"
    rejected = "REJECTED"
    partially_approved = "PARTIALLY_APPROVED"
    # phase de réconciliation
    ordered = "ORDERED"
    partially_delivered = "PARTIALLY_DELIVERED"
    delivered = "DELIVERED"

class MaterialStatus(str, enum.Enum):
    pending = "PENDING"
    approved = "APPROVED"
    rejected = "REJECTED"

class ResourceType(str, enum.Enum):
    material = "MATERIAL"
    labour = "LABOUR"

class RateEstimateType(str, enum.Enum):
    engineer_estimate = "ENGINEER_ESTIMATE"
    market_rate = "MARKET_RATE"
    tender_rate = "TENDER_RATE"

class POStatus(str, enum.Enum):
    open = "OPEN"
    closed = "CLOSED"

class DeliveryCondition(str, enum.Enum):
    good = "GOOD"
    damaged = "DAMAGED"
    partial_damage = "PARTIAL_DAMAGE"
    other = "OTHER"
