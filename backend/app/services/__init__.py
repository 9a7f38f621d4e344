# Services package init
"""
Doll Pin API: Services Layer
==============================

Service Inventory:
    - DollService:   doll and pin rules plus persistence (one commit per mutation)
    - ImageCodec:    abstract image operations (inspect, resize, reencode,
                     optimize, watermark)
    - PillowCodec:   ImageCodec backed by Pillow
    - ImagePipeline: upload validation, staging, derivative creation, cleanup

Services know nothing about HTTP; routes translate requests into calls and
the global exception handlers translate service errors into responses.
"""
