"""
Constants used across the bundler modules.

Unity class ids, the pointer field names and the class name table used when
the build config names classes instead of numbering them.
"""

# Unity class ids with special handling
CLASS_SHADER = 48
CLASS_MONO_BEHAVIOUR = 114
CLASS_MONO_SCRIPT = 115
CLASS_ASSET_BUNDLE = 142

# Script type index stored for classes that are not script-backed
SCRIPT_INDEX_NONE = 0xFFFF

# Reference field sub-fields
FILE_ID_FIELD = "m_FileID"
PATH_ID_FIELD = "m_PathID"

CLASS_NAMES = {
    "GameObject": 1,
    "Transform": 4,
    "Material": 21,
    "MeshRenderer": 23,
    "Texture2D": 28,
    "MeshFilter": 33,
    "Mesh": 43,
    "Shader": CLASS_SHADER,
    "TextAsset": 49,
    "AnimationClip": 74,
    "AudioClip": 83,
    "RuntimeAnimatorController": 93,
    "MonoBehaviour": CLASS_MONO_BEHAVIOUR,
    "MonoScript": CLASS_MONO_SCRIPT,
    "Font": 128,
    "AssetBundle": CLASS_ASSET_BUNDLE,
    "PhysicMaterial": 134,
    "Cubemap": 89,
    "Sprite": 213,
}

CLASS_IDS_TO_NAMES = {class_id: name for name, class_id in CLASS_NAMES.items()}


def class_name(class_id: int) -> str:
    """Readable class label for logs."""
    return CLASS_IDS_TO_NAMES.get(class_id, f"Class{class_id}")
