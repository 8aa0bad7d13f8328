from __future__ import annotations


# Collections in the operational datastore
ORDERS = "orders"
BUSINESSES = "businesses"
DRIVERS = "drivers"
# Local mirror of provider data, only read as courier fallback
PROVIDER_ORDERS = "shipdayOrders"
PROVIDER_CARRIERS = "carriers"

COLLECTIONS = (ORDERS, BUSINESSES, DRIVERS, PROVIDER_ORDERS, PROVIDER_CARRIERS)

# Order fields tried, in order, when resolving a requested identifier.
# The document id is the last resort.
ORDER_LOOKUP_FIELDS = ("orderNumber", "shipdayOrderNumber", "shipdayOrderId")

# Placeholders rendered when nothing better is known
CUSTOMER_PLACEHOLDER = "Cliente"
BUSINESS_PLACEHOLDER = "Negocio"
COURIER_PLACEHOLDER = "Repartidor"
ADDRESS_PLACEHOLDER = "Dirección no disponible"
ORDER_ITEM_PLACEHOLDER = "Pedido de entrega"

# Provider does not rate couriers; this neutral value stands in
DEFAULT_COURIER_RATING = 4.5

# The provider uses -1 for "no carrier assigned"
UNASSIGNED_CARRIER_ID = -1

NOT_FOUND_MESSAGE = "Pedido no encontrado"
