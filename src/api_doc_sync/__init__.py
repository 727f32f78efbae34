"""Compile OpenAPI, Swagger, Postman and Apifox documents into typed Python API clients."""

from .adapters import AdapterRegistry, InvokeSourceConfig, parse_service_definition
from .fetch import ApiDocRequest, DiscoverySource, MultiEndpointSource, fetch_documentation
from .generator.client import ClientGenerator, CodegenOptions, generate_client_source
from .pipeline import DocSyncPipeline, PipelineRunOptions

__version__ = "0.1.0"
