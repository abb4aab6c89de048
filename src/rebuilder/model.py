# src/rebuilder/model.py (Result Layer)
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from fetcher.model import AssetReference


class FunctionalityView(BaseModel):
    """Contents of site_functionality.json."""
    css: List[AssetReference] = Field(default_factory=list)
    javascript: List[AssetReference] = Field(default_factory=list)
    images: List[AssetReference] = Field(default_factory=list)
    interactive_elements: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    forms: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    navigational_elements: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    ai_analysis: Dict[str, Any] = Field(default_factory=dict)


class VisualView(BaseModel):
    """Contents of site_visual_structure.json."""
    html_structure: List[Dict[str, Any]] = Field(default_factory=list)
    layout_elements: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    containers: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    content_blocks: Dict[str, List[Dict[str, Any]]] = Field(default_factory=dict)
    images: List[AssetReference] = Field(default_factory=list)
    meta_data: Dict[str, str] = Field(default_factory=dict)
    title: Optional[str] = None
    ai_analysis: Dict[str, Any] = Field(default_factory=dict)
