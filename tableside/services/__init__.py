"""
                        Services Module

Business logic for the table-ordering flow. External providers follow the
hybrid pattern: a Mock implementation for development and a Real one for
production, chosen by ENV_MODE.

Services:
    - pricing: Cart and totals engine
    - menu / menu_import / spreadsheet: Catalog, bulk import and XLSX export
    - orders / lifecycle: Order and payment state machines
    - service_requests: Staff-assistance tickets
    - reviews / restaurants: Reviews and restaurant settings
    - payment / notifications: Stripe and Twilio integrations
"""
