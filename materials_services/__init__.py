"""
Materials Services -- imperative shell over the engines and the kernel.

Shipment workflows, blob storage, site registry, dashboard and the
per-site session controller.
"""
