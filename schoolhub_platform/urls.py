from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path, include

from assessments import urls as assessment_urls
from cores import urls as core_urls
from exams import urls as exam_urls
from payments import urls as payment_urls
from users import urls as user_urls

urlpatterns = [
    path('admin/', admin.site.urls),

    # --- Authentication & profile ---
    path('api/auth/', include(user_urls.auth_urlpatterns)),

    # --- Platform operator ---
    path('api/headadmin/', include(core_urls.headadmin_urlpatterns)),
    path('api/headadmin/', include(payment_urls.headadmin_urlpatterns)),

    # --- School administration ---
    path('api/admin/', include(user_urls.admin_urlpatterns)),
    path('api/admin/', include(exam_urls.admin_urlpatterns)),
    path('api/admin/', include(core_urls.admin_urlpatterns)),
    path('api/admin/', include(payment_urls.admin_urlpatterns)),

    # --- Teachers: tests, question bank, grading ---
    path('api/teacher/', include(exam_urls.teacher_urlpatterns)),
    path('api/teacher/', include(assessment_urls.teacher_urlpatterns)),

    # --- Students: taking tests ---
    path('api/students/', include(assessment_urls.student_urlpatterns)),

    path('api/notifications/', include(core_urls.notification_urlpatterns)),
    path('api/messages/', include('messaging.urls')),
    path('api/payments/', include('payments.urls')),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
