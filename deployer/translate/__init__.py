from .translator import translate, translate_spawn_request, validate_config
from .manifests import NamingConvention, render_manifests
from .project import render_project
from .networks import SUPPORTED_NETWORKS, resolve_network_id

__all__ = [
    'translate',
    'translate_spawn_request',
    'validate_config',
    'NamingConvention',
    'render_manifests',
    'render_project',
    'SUPPORTED_NETWORKS',
    'resolve_network_id',
]
