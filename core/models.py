"""
Plain data models shared by the parser, the pipeline and the indexers.
"""
from enum import Enum
from typing import List, Optional


class TagSource(str, Enum):
    """Which part of the generation metadata produced a tag association."""
    PROMPT = "prompt"
    V4_BASE = "v4_base"
    V4_CHAR = "v4_char"
    NEGATIVE = "negative"
    USER = "user"


class WeightedTag:
    """A normalized tag with its prompt weight, sign and source."""
    def __init__(self, name: str, weight: float = 1.0, is_negative: bool = False,
                 source: TagSource = TagSource.PROMPT):
        self.name = name
        self.weight = weight
        self.is_negative = is_negative
        self.source = TagSource(source)

    def to_dict(self):
        return {
            'name': self.name,
            'weight': self.weight,
            'isNegative': self.is_negative,
            'source': self.source.value,
        }

    def __eq__(self, other):
        if not isinstance(other, WeightedTag):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self):
        sign = '-' if self.is_negative else ''
        return f"WeightedTag({self.name!r}, {sign}{self.weight}, {self.source.value})"


class GenerationMetadata:
    """
    Structured record parsed from a PNG comment.

    Every scalar is nullable. raw_comment is always the verbatim comment
    string (empty when the image carried none).
    """
    def __init__(self, raw_comment: str = '', prompt: Optional[str] = None,
                 negative_prompt: Optional[str] = None, seed: Optional[int] = None,
                 steps: Optional[int] = None, scale: Optional[float] = None,
                 sampler: Optional[str] = None, width: Optional[int] = None,
                 height: Optional[int] = None, v4_base_caption: Optional[str] = None,
                 v4_char_captions: Optional[list] = None,
                 tags: Optional[List[WeightedTag]] = None):
        self.raw_comment = raw_comment
        self.prompt = prompt
        self.negative_prompt = negative_prompt
        self.seed = seed
        self.steps = steps
        self.scale = scale
        self.sampler = sampler
        self.width = width
        self.height = height
        self.v4_base_caption = v4_base_caption
        self.v4_char_captions = v4_char_captions
        self.tags = tags if tags is not None else []

    @classmethod
    def empty(cls, raw_comment: str = ''):
        return cls(raw_comment=raw_comment)

    def to_dict(self):
        return {
            'prompt': self.prompt,
            'negativePrompt': self.negative_prompt,
            'seed': self.seed,
            'steps': self.steps,
            'scale': self.scale,
            'sampler': self.sampler,
            'width': self.width,
            'height': self.height,
            'v4BaseCaption': self.v4_base_caption,
            'v4CharCaptions': self.v4_char_captions,
            'tags': [tag.to_dict() for tag in self.tags],
            'rawComment': self.raw_comment,
        }


class ImageRef:
    """Reference to a persisted image, returned by ingestion."""
    def __init__(self, id: int, filename: str, s3_key: str, url: str = '',
                 width: Optional[int] = None, height: Optional[int] = None,
                 metadata_format: Optional[str] = None, created_at: Optional[str] = None):
        self.id = id
        self.filename = filename
        self.s3_key = s3_key
        self.url = url
        self.width = width
        self.height = height
        self.metadata_format = metadata_format
        self.created_at = created_at

    def to_dict(self):
        return {
            'id': self.id,
            'filename': self.filename,
            's3Key': self.s3_key,
            's3Url': self.url,
            'width': self.width,
            'height': self.height,
            'metadataFormat': self.metadata_format,
            'createdAt': self.created_at,
        }


class IngestResult:
    """Outcome of a single ingestion: new image, duplicate, or error."""
    def __init__(self, image: Optional[ImageRef] = None, duplicate: bool = False,
                 error: Optional[str] = None):
        self.image = image
        self.duplicate = duplicate
        self.error = error

    @property
    def success(self) -> bool:
        return self.error is None

    @classmethod
    def created(cls, image: ImageRef):
        return cls(image=image)

    @classmethod
    def existing(cls, image: ImageRef):
        return cls(image=image, duplicate=True)

    @classmethod
    def failed(cls, error: str):
        return cls(error=error)

    def to_dict(self):
        if not self.success:
            return {'success': False, 'error': self.error}
        if self.duplicate:
            return {'success': True, 'duplicate': True, 'existingImage': self.image.to_dict()}
        return {'success': True, 'duplicate': False, 'image': self.image.to_dict()}


class TagEvaluation:
    """Popularity decision for one tag."""
    def __init__(self, tag_id: int, name: Optional[str], category: Optional[str],
                 should_index: bool, display_count: int):
        self.tag_id = tag_id
        self.name = name
        self.category = category
        self.should_index = should_index
        self.display_count = display_count

    def to_dict(self):
        return {
            'tagId': self.tag_id,
            'name': self.name,
            'category': self.category,
            'shouldIndex': self.should_index,
            'displayCount': self.display_count,
        }


def tokenize_tag_name(name: str) -> str:
    """'red_eyes' -> 'red eyes', 'artist:some-one' -> 'artist some one'."""
    return name.replace('_', ' ').replace('-', ' ').replace(':', ' ')
