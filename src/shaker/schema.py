"""Database schema for the entry tree.

The ``entry`` table keeps the column layout of the mana content cache.
``ancestor`` holds 1 while at least one entry names the row as its parent.
``retired`` records every ordinal that stopped being live (deleted, moved or
rebalanced away) so it is never issued again.

Ordinals compare with SQLite's default BINARY collation, which is plain
byte order, so ``ORDER BY ordinal`` is the depth-first order of the tree.
"""

SCHEMA = """
CREATE TABLE IF NOT EXISTS entry (
  ordinal text NOT NULL PRIMARY KEY,
  parent  text,
  ancestor  NUMBER NOT NULL,
  slug    text NOT NULL,
  title   text NOT NULL,
  difficulty NUMBER,
  content text NOT NULL
);

CREATE INDEX IF NOT EXISTS entry_parent_ordinal ON entry (parent, ordinal);

CREATE TABLE IF NOT EXISTS retired (
  ordinal text NOT NULL PRIMARY KEY
);
"""

COLUMNS = ("ordinal", "parent", "ancestor", "slug", "title", "difficulty", "content")
