"""Decode Kubelet resource metrics and serve node and pod usage as metrics API objects."""

__version__ = "0.1.0"