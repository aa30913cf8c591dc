# Page script run once per page.
#
# Names available: page, autotag, ViewType, BlockInclude, AllowEmbed,
# UNBOUNDED, settings, log.

if page.tagged_with_any():
    page.include = True


def visit(block, depth):
    if depth == 0:
        return

    if block.equals("Journal") or block.any_tag("public"):
        # Journal sections publish their entries, not the heading itself
        block.include = BlockInclude.ONLY_CHILDREN if block.equals("Journal") else BlockInclude.INCLUDE
        page.include = True
    elif block.starts_with("TODO") or block.any_tag("private"):
        block.include = BlockInclude.EXCLUDE
    elif depth == 1 and page.include:
        block.include = BlockInclude.INCLUDE

    if block.starts_with("Steps"):
        block.view_type = ViewType.NUMBERED

    page.add_tags(autotag(settings.autotag, block.id))


page.each_block(UNBOUNDED, visit)

if page.is_journal and not page.include:
    page.allow_embedding = AllowEmbed.NO
