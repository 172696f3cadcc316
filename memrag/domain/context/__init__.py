# This module handles what the agent knows beyond the current message

# +---------------------+        +---------------------+
# |      Memory         |        |     Knowledge       |
# |---------------------|        |---------------------|
# | Active facts        |        | Document chunks     |
# |   (sqlite, scored)  |        |   (.txt / .md)      |
# | Archived facts      |        | Vector index        |
# |   (semantic recall) |        |                     |
# +---------------------+        +---------------------+

#           \                       /
#            \                     /
#             v                   v
# +----------------------------------------+
# |           Turn context                 |
# |----------------------------------------|
# | Recalled past context (archive search) |
# | Recent context (active, oldest first)  |
# | Knowledge base passages                |
# +----------------------------------------+
#         |
#         v
#   [LLM response]  -->  memory update (filter, score, consolidate)
