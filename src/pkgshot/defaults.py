"""Default screenshots chosen from the package name."""
import re
from enum import Enum
from pathlib import Path


class DefaultImageCategory(Enum):
    """Default image categories; values are the bundled file names."""

    DEVEL = "devel-package.png"
    LANG = "lang-package.png"
    DOC = "doc-package.png"
    RUBY = "ruby-package.png"
    PERL = "perl-package.png"
    PYTHON = "python-package.png"
    KERNEL = "kernel-package.png"
    OPENSTACK = "openstack-package.png"
    GENERIC = "package.png"

    @property
    def file_name(self) -> str:
        return self.value


# Evaluated top-down, first match wins. Order matters: "foo-devel-doc" is devel,
# "python-foo-doc" is doc.
DEFAULT_IMAGE_RULES: list[tuple[re.Pattern, DefaultImageCategory]] = [
    (re.compile(r"-devel$"), DefaultImageCategory.DEVEL),
    (re.compile(r"-devel-"), DefaultImageCategory.DEVEL),
    (re.compile(r"-debug$"), DefaultImageCategory.DEVEL),
    (re.compile(r"-lang$"), DefaultImageCategory.LANG),
    (re.compile(r"-l10n-"), DefaultImageCategory.LANG),
    (re.compile(r"-i18n-"), DefaultImageCategory.LANG),
    (re.compile(r"-translations"), DefaultImageCategory.LANG),
    (re.compile(r"-doc$"), DefaultImageCategory.DOC),
    (re.compile(r"-help-"), DefaultImageCategory.DOC),
    (re.compile(r"-javadoc$"), DefaultImageCategory.DOC),
    (re.compile(r"-debuginfo"), DefaultImageCategory.DEVEL),
    (re.compile(r"-debugsource"), DefaultImageCategory.DEVEL),
    (re.compile(r"-kmp-"), DefaultImageCategory.DEVEL),
    (re.compile(r"^rubygem-"), DefaultImageCategory.RUBY),
    (re.compile(r"^perl-"), DefaultImageCategory.PERL),
    (re.compile(r"^python-"), DefaultImageCategory.PYTHON),
    (re.compile(r"^python2-"), DefaultImageCategory.PYTHON),
    (re.compile(r"^python3-"), DefaultImageCategory.PYTHON),
    (re.compile(r"^kernel-"), DefaultImageCategory.KERNEL),
    (re.compile(r"^openstack-", re.IGNORECASE), DefaultImageCategory.OPENSTACK),
]


def resolve_default_category(pkg_name: str) -> DefaultImageCategory:
    """Pick the default image category for a package.

    Args:
        pkg_name: Package name

    Returns:
        Category of the first matching rule, GENERIC when none matches
    """
    for pattern, category in DEFAULT_IMAGE_RULES:
        if pattern.search(pkg_name):
            return category
    return DefaultImageCategory.GENERIC


def default_file_path(pkg_name: str, root: str | Path | None = None) -> str:
    """Location of the default image for a package.

    Args:
        pkg_name: Package name
        root: Directory holding the default screenshots. When omitted the
            path is returned relative to the images root.

    Returns:
        ``default-screenshots/<file>`` or ``<root>/<file>``
    """
    file_name = resolve_default_category(pkg_name).file_name
    if root is None:
        return f"default-screenshots/{file_name}"
    return str(Path(root) / file_name)
