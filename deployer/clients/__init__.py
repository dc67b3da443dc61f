from .interfaces import ClusterApi
from .kube_rest import KubeRestClient

__all__ = ['ClusterApi', 'KubeRestClient']
