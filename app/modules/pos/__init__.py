"""
Módulo POS (Point of Sale)

ENTIDADES PRINCIPALES:
- Sale: Encabezado de venta con totales calculados
- SaleLineItem: Líneas con snapshot del ítem vendido
- SaleSequence: Numeración de ventas por tienda

FUNCIONALIDADES:
- Venta atómica: encabezado, líneas y descuento de stock en una transacción
- Ventas concurrentes sin sobreventa (UPDATE condicional de stock)
- Cancelación con restauración de inventario
- Consulta, listado con filtros y estadísticas

INTEGRACIÓN CON OTROS MÓDULOS:
- Inventory: InventoryLedger y diario de movimientos
- Stores/Customers: referencias validadas por tenant
"""
