"""academy/ -- The academic hierarchy: city -> campus -> course -> class -> assignment/quiz.

Layer rule: academy/ may import auth.store table objects (class creation and
enrolment write to teacher and student rows in the same transaction). It does
NOT import from api/.
"""
