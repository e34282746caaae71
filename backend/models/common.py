from enum import Enum


class UserRole(str, Enum):
    USER  = "user"
    RIDER = "rider"
    ADMIN = "admin"


class DeliveryStatus(str, Enum):
    PROCESSING = "Processing"
    IN_TRANSIT = "in-transit"   # livreur assigné, en route vers l'expéditeur
    PICKED     = "picked"       # colis récupéré ("On The Way")
    DELIVERED  = "delivered"
    CANCELLED  = "Cancelled"

    @classmethod
    def parse(cls, value) -> "DeliveryStatus":
        """
        Convertit une saisie libre en statut canonique.
        Accepte les synonymes historiques ("On The Way" → picked) et ignore la casse.
        Lève ValueError pour toute valeur hors de l'énumération.
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            raise ValueError(f"Statut de livraison invalide : {value!r}")
        key = value.strip().lower().replace("_", "-").replace(" ", "-")
        if key in STATUS_ALIASES:
            return STATUS_ALIASES[key]
        for member in cls:
            if member.value.lower() == key:
                return member
        raise ValueError(f"Statut de livraison invalide : {value!r}")


STATUS_ALIASES: dict[str, DeliveryStatus] = {
    "on-the-way":  DeliveryStatus.PICKED,
    "picked-up":   DeliveryStatus.PICKED,
    "in-transit":  DeliveryStatus.IN_TRANSIT,
    "intransit":   DeliveryStatus.IN_TRANSIT,
    "canceled":    DeliveryStatus.CANCELLED,
}


class PaymentStatus(str, Enum):
    UNPAID = "unpaid"
    PAID   = "paid"


class RiderStatus(str, Enum):
    PENDING = "pending"
    ACTIVE  = "active"


class WorkStatus(str, Enum):
    AVAILABLE   = "available"
    IN_DELIVERY = "in delivery"
