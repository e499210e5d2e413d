"""Embedding function package.

Layout:
- ``api``: request handling shared by the function and the dev server.
- ``encoders``: token codec, inference engine, pooling and the pipeline.
- ``runtime``: process-wide model context and metrics.
- ``lambda_handler``: serverless entry point.
- ``main``: local FastAPI development server.

Import convenience:
- from app.lambda_handler import lambda_handler
"""
