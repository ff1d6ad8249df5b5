from django.contrib import admin
from django.urls import path, include
from django.conf import settings
from django.conf.urls.static import static
from rest_framework.routers import DefaultRouter
from events.views import (
    CertificateViewSet, EventCategoryViewSet, EventTagViewSet, EventViewSet,
    FeedbackViewSet, RegistrationViewSet, UserViewSet, current_user, dashboard, signup
)
from rest_framework_simplejwt.views import TokenObtainPairView, TokenRefreshView
from drf_spectacular.views import SpectacularAPIView, SpectacularSwaggerView

router = DefaultRouter()
router.register(r'events', EventViewSet, basename='events')
router.register(r'registrations', RegistrationViewSet, basename='registrations')
router.register(r'feedback', FeedbackViewSet)
router.register(r'certificates', CertificateViewSet, basename='certificates')
router.register(r'categories', EventCategoryViewSet)
router.register(r'tags', EventTagViewSet)
router.register(r'users', UserViewSet)

urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/', include(router.urls)),
    path('api/user/me/', current_user, name='current_user'),
    path('api/dashboard/', dashboard, name='dashboard'),
    path('api/auth/signup/', signup, name='signup'),
    path('api/token/', TokenObtainPairView.as_view(), name='token_obtain_pair'),
    path('api/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('api/schema/', SpectacularAPIView.as_view(), name='schema'),
    path('api/docs/', SpectacularSwaggerView.as_view(url_name='schema'), name='swagger-ui'),
] + static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
