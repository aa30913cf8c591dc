"""
Script-facing facades for pages and blocks.

Page scripts never see Page or Block records directly. They get these thin
adapters, which expose exactly the fields a script may read or change and
write through to the owned records.
"""

from typing import TYPE_CHECKING, Callable, Dict, List, Optional, Tuple, Union

from .. import tags as tag_engine
from ..models import AllowEmbed, Block, BlockInclude, Page, ViewType

if TYPE_CHECKING:
    from .evaluator import PolicyEvaluator


def _coerce_enum(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    if isinstance(value, str):
        normalized = value.strip().lower()
        for member in enum_cls:
            if normalized in (member.value, member.name.lower()):
                return member
    raise ValueError(f"Invalid {enum_cls.__name__} value: {value!r}")


class BlockFacade:
    """
    Mutable view of one block, passed to each_block visitors.

    ``contents`` and ``tags`` are read-only; ``view_type``, ``heading`` and
    ``include`` may be set.
    """

    __slots__ = ("_block",)

    def __init__(self, block: Block):
        self._block = block

    @property
    def id(self) -> str:
        return self._block.id

    @property
    def contents(self) -> str:
        return self._block.contents

    def starts_with(self, prefix: str) -> bool:
        return self._block.contents.startswith(prefix)

    def equals(self, text: str) -> bool:
        return self._block.contents.strip() == text.strip()

    @property
    def tags(self) -> Tuple[str, ...]:
        return tuple(self._block.tags)

    def any_tag(self, predicate: Union[str, Callable[[str], bool]]) -> bool:
        """True if any tag satisfies ``predicate``; a string matches by name."""
        if isinstance(predicate, str):
            name = predicate
            return name in self._block.tags
        return any(predicate(tag) for tag in self._block.tags)

    def add_tag(self, name: str) -> None:
        self._block.tags = tag_engine.add_tags(self._block.tags, [name])

    @property
    def attributes(self) -> Dict[str, List[str]]:
        return {name: list(values) for name, values in self._block.attributes.items()}

    def get_attr_first(self, name: str) -> str:
        values = self._block.attributes.get(name) or []
        return values[0] if values else ""

    @property
    def view_type(self) -> ViewType:
        return self._block.view_type

    @view_type.setter
    def view_type(self, value: Union[ViewType, str]) -> None:
        self._block.view_type = _coerce_enum(ViewType, value)

    @property
    def heading(self) -> int:
        return self._block.heading

    @heading.setter
    def heading(self, value: int) -> None:
        if int(value) < 0:
            raise ValueError("heading must be >= 0")
        self._block.heading = int(value)

    @property
    def include(self) -> BlockInclude:
        return self._block.include

    @include.setter
    def include(self, value: Union[BlockInclude, str]) -> None:
        self._block.include = _coerce_enum(BlockInclude, value)

    def __repr__(self) -> str:
        return f"BlockFacade(id='{self.id}', contents='{self.contents[:40]}')"


class PageFacade:
    """
    Mutable view of the page being evaluated, bound to ``page`` in scripts.
    """

    def __init__(self, page: Page, evaluator: "PolicyEvaluator"):
        self._page = page
        self._evaluator = evaluator

    @property
    def id(self) -> str:
        return self._page.id

    @property
    def is_journal(self) -> bool:
        return self._page.is_journal

    @property
    def title(self) -> str:
        return self._page.title

    @title.setter
    def title(self, value: str) -> None:
        self._page.title = str(value)

    def split_title(self) -> List[str]:
        """Title segments split on the namespace separator; ``pop()`` yields the last."""
        return tag_engine.split_namespace(
            self._page.title, self._evaluator.settings.namespace_separator
        )

    @property
    def url_base(self) -> str:
        return self._page.url_base

    @url_base.setter
    def url_base(self, value: str) -> None:
        self._page.url_base = str(value)

    @property
    def url_name(self) -> str:
        return self._page.url_name

    @url_name.setter
    def url_name(self, value: str) -> None:
        self._page.url_name = str(value)

    @property
    def path_base(self) -> str:
        return self._page.path_base

    @path_base.setter
    def path_base(self, value: str) -> None:
        self._page.path_base = str(value)

    @property
    def path_name(self) -> str:
        return self._page.path_name

    @path_name.setter
    def path_name(self, value: str) -> None:
        self._page.path_name = str(value)

    @property
    def include(self) -> bool:
        return self._page.include

    @include.setter
    def include(self, value: bool) -> None:
        self._page.include = bool(value)

    @property
    def allow_embedding(self) -> AllowEmbed:
        return self._page.allow_embedding

    @allow_embedding.setter
    def allow_embedding(self, value: Union[AllowEmbed, str, bool]) -> None:
        if isinstance(value, bool):
            value = AllowEmbed.YES if value else AllowEmbed.NO
        self._page.allow_embedding = _coerce_enum(AllowEmbed, value)

    @property
    def tags(self) -> Tuple[str, ...]:
        return tuple(self._page.tags)

    def add_tag(self, name: str) -> None:
        self.add_tags([name])

    def add_tags(self, names) -> None:
        if isinstance(names, str):
            names = [names]
        self._page.tags = tag_engine.add_tags(self._page.tags, names)

    def remove_tag(self, name: str) -> None:
        self._page.tags = tag_engine.remove_tag(self._page.tags, name)

    def tagged_with_any(self, names=None) -> bool:
        """True if the page has any of ``names`` (default: the configured include tags)."""
        if names is None:
            names = self._evaluator.settings.include_tags
        wanted = set(names)
        return any(tag in wanted for tag in self._page.tags)

    def get_attr_first(self, name: str) -> str:
        values = self._page.attributes.get(name) or []
        return values[0] if values else ""

    def get_attr(self, name: str) -> List[str]:
        return list(self._page.attributes.get(name) or [])

    def set_attr(self, name: str, value: Union[str, List[str]]) -> None:
        values = [value] if isinstance(value, str) else list(value)
        self._page.attributes = {**self._page.attributes, name: values}

    def each_block(
        self,
        max_depth: Optional[int] = None,
        visitor: Optional[Callable[[BlockFacade, int], None]] = None
    ) -> None:
        """
        Walk the page's blocks depth-first, calling ``visitor(block, depth)``.

        Depth 0 is the page itself. ``max_depth`` of None uses the configured
        default; UNBOUNDED (-1) walks the whole tree.
        """
        if visitor is None and callable(max_depth):
            max_depth, visitor = None, max_depth
        if visitor is None:
            raise TypeError("each_block requires a visitor")
        if max_depth is None:
            max_depth = self._evaluator.settings.max_depth
        self._evaluator.traverse(self._page.id, max_depth, visitor)

    def __repr__(self) -> str:
        return f"PageFacade(id='{self.id}', title='{self.title}')"
