"""REST bridge in front of an Odoo ERP JSON-RPC backend."""
