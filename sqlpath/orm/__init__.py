from .base import Base

# Accounts and plans
from .user import User, SubscriptionTier
from .plan import PlanPermission, SubscriptionPrice, SubscriptionPayment

# Catalog
from .course import Course, CourseModule, CourseStatus, ChallengeType
from .learning_path import LearningPath, LearningPathCourse

# Progress
from .progress import CourseEnrollment, ModuleProgress, PathEnrollment, EnrollmentStatus, ModuleProgressStatus

# Challenges and rewards
from .challenge import SavedChallenge, ChallengeInventory, ChallengeAttempt, XpEvent
from .reward import UserAchievement, UserCertificate
